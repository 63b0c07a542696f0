"""Inventory Models."""

from typing import List

from pydantic import BaseModel, Field, computed_field


class ItemValidationRequest(BaseModel):
    item_codes: List[str] = Field(default_factory=list, description="Item codes to check")


class ItemValidationResult(BaseModel):
    """Which item codes exist in Sage 100."""
    valid_item_codes: List[str] = Field(default_factory=list)
    invalid_item_codes: List[str] = Field(default_factory=list)
    total_checked: int = 0
    message: str = ""

    @computed_field
    @property
    def all_valid(self) -> bool:
        return not self.invalid_item_codes


class ItemCheckResponse(BaseModel):
    item_code: str
    exists: bool
    message: str
