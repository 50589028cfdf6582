"""Runtime components of the multi-zone coordination layer.

Import from the submodules directly; this package keeps no eager imports so
``zoneharvest.state`` can depend on ``runtime.config`` without a cycle.
"""
