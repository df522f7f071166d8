from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Market Data Models


class MarketYear(BaseModel):
    """One year of the historical series. Returns and inflation are decimal fractions (0.07 == 7%)."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    year: int = Field(ge=1900, le=2100)
    # The published data file calls the equity column "sp500Return"
    equityReturn: float = Field(
        ge=-1.0, le=2.0,
        validation_alias=AliasChoices("equityReturn", "sp500Return"),
    )
    bondReturn: float = Field(ge=-1.0, le=2.0)
    inflation: float = Field(ge=-0.5, le=0.5)
