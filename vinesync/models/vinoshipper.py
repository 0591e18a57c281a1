"""
Pydantic models for Vinoshipper API request bodies.
Response bodies are too inconsistent to model directly; see services/normalizer.py.
"""
from pydantic import BaseModel, Field


class CreateProductRequest(BaseModel):
    """Body for POST /products."""
    sku: str = Field(..., description="Product SKU (required)")
    name: str = Field(..., description="Product name (required)")
    quantity: int = Field(..., description="Starting quantity")


class UpdateInventoryRequest(BaseModel):
    """Body for PUT /products/{sku}."""
    quantity: int = Field(..., description="New absolute quantity")
