# pasoapaso/__init__.py
"""Backend de pagamentos e entregas da loja Paso a Paso."""

__version__ = "1.0.0"
