# backend/fieldbook/schemas/common.py
"""
Shared pieces of the public junk-quote API schemas (camelCase on the wire).
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..services.geocode import Address


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddressFields(CamelModel):
    address_line1: str = Field(min_length=5)
    city: str = Field(min_length=2)
    state: str = Field(min_length=2, max_length=2)
    postal_code: str = Field(min_length=3)

    def to_address(self) -> Address:
        return Address(
            address_line1=self.address_line1,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
        )
