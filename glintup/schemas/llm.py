from pydantic import BaseModel, ConfigDict, Field


class GeneratedWord(BaseModel):
    """
    One vocabulary entry returned by the generation provider.

    Entries are validated one by one so a single malformed item does not
    discard the rest of the batch.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    word: str = Field(min_length=1, max_length=100)
    definition: str = Field(min_length=1)
    example: str = Field(min_length=1)
    category: str | None = None
    part_of_speech: str | None = Field(default=None, max_length=30)
    pronunciation: str | None = Field(default=None, max_length=100)
    memory_hook: str | None = None


class GenerationRequest(BaseModel):
    """Input payload for a word generation call."""

    category: str
    subcategory: str | None = None
    count: int = Field(ge=1, le=10)
    excluding: list[str] = Field(default_factory=list)
