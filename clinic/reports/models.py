"""
Report Models

Pydantic models for the custom statistic write bodies. Fields accept the
camelCase names used on the wire; statType and category stay free-form strings
here and are checked by the handler layer so that bad values surface as report
validation errors rather than framework errors.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class CustomStatBase(BaseModel):
    """Fields shared by create and update bodies"""
    model_config = ConfigDict(populate_by_name=True)

    description: Optional[str] = Field(None, description="Free-text explanation shown with the stat")
    filter_field: Optional[str] = Field(None, alias="filterField", description="Patient field to filter on")
    filter_value: Optional[str] = Field(None, alias="filterValue", description="Value the field must equal")
    is_global: Optional[bool] = Field(None, alias="isGlobal", description="Visible to every branch")
    branch_id: Optional[int] = Field(None, alias="branchId", description="Owning branch of a branch stat")


class CustomStatCreate(CustomStatBase):
    """Body of POST /api/custom-stats"""
    name: Optional[str] = Field(None, description="Display name")
    stat_type: Optional[str] = Field(None, alias="statType", description="count, sum, percentage or average")
    category: Optional[str] = Field(None, description="patients, payments or visits")

    def to_record(self) -> Dict[str, Any]:
        data = self.model_dump()
        data['is_global'] = bool(data.get('is_global'))
        return data


class CustomStatUpdate(CustomStatBase):
    """Body of PUT /api/custom-stats/{id}; omitted fields are left unchanged"""
    name: Optional[str] = None
    stat_type: Optional[str] = Field(None, alias="statType")
    category: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)
