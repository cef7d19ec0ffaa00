from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PlanTier(str, Enum):
    starter = "starter"
    standard = "standard"
    premium = "premium"


class PropFirm(BaseModel):
    """
    A prop firm the user can track in the dashboard.
    Catalog firms are seeded by the backend; custom firms are user-authored.
    Records are immutable: toggling produces a new record.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    is_selected: bool = False
    is_custom: bool = False

    # Matched against bank transaction descriptions downstream
    match_keyword: str = ""
