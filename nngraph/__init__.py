"""Neural-network computation graphs with symbolic shapes.

Covers shape inference, basic layers, tensor-parallel weight splitting,
lowering to storage, and workspace memory planning.
"""

__version__ = "0.1.0"