from typing import List, Optional
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from admin_console.features.navigation.menu import NavigationItem


class NavigationResponse(BaseModel):
    items: List[NavigationItem]


class ScreenResponse(BaseModel):
    """Descriptor of a screen the caller may open, with its action flags."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    screen: str
    label: str
    path: str
    permission: Optional[str] = None
    can_write: bool = False
    can_delete: bool = False
