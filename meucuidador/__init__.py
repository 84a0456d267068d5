"""
MeuCuidador real-time client.

The notification socket core lives in ``meucuidador.realtime``; the
status API in ``meucuidador.routes``; ``meucuidador.server`` wires
both into a runnable FastAPI process.
"""

__version__ = "1.0.0"
