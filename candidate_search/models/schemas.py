from pydantic import BaseModel, Field
from typing import Any


# -------- Search --------
class SearchRequest(BaseModel):
    # any JSON value; the pipeline rejects non-strings as invalid queries
    query: Any = Field(default=None, description="Free-text role description")
