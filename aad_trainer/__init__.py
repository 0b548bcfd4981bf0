"""
aad_trainer: layered numeric models trained by reverse-mode differentiation
with a derivative-free line search and trust-region optimizer.
"""

__version__ = "0.1.0"
