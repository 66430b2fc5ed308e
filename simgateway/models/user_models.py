# simgateway/models/user_models.py

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserRecord(BaseModel):
    """A per-session record of the 'userlist' table. Numeric ids from the client are kept as text."""
    model_config = ConfigDict(extra='ignore', populate_by_name=True, coerce_numbers_to_str=True)

    record_id: Optional[int] = Field(None, alias="id", description="Row returned by the insert; targets the update.")
    client_name: Optional[str] = Field(None, alias="clientName")
    user_id: str = Field(..., alias="userID")
    user_name: Optional[str] = Field(None, alias="userName")
    user_score: Optional[float] = Field(None, alias="userScore")
    historique: Optional[str] = Field(None, description="Conversation transcript.")
    rapport: Optional[str] = Field(None, description="Free-text analysis.")
    user_time: Optional[int] = Field(None, alias="userTime", description="Elapsed time in seconds.")
