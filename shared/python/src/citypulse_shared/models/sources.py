"""
models/sources.py — Immutable per-dataset fetch descriptors.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from citypulse_shared.constants import FetchMode, IncidentClass, OutputKind
from citypulse_shared.models.provenance import QueryValue

DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_PAGES = 100

DEFAULT_QUERY_PARAMS: dict[str, QueryValue] = {
    "where": "1=1",
    "outFields": "*",
    "returnGeometry": True,
    "outSR": 4326,
}


class SourceConfig(BaseModel):
    """
    How to fetch one logical dataset.

    Each (source_url, query_variant) pair becomes one resolver tier, tried
    in declaration order: all variants of the first URL, then the next URL.
    An empty query_variants means a single tier per URL with the base params.
    """

    model_config = ConfigDict(frozen=True)

    dataset_id: str
    source_urls: tuple[str, ...] = Field(min_length=1)
    mode: FetchMode
    output: OutputKind = "layer"
    classification: IncidentClass | None = None
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, gt=0)
    max_pages: int = Field(default=DEFAULT_MAX_PAGES, gt=0)
    max_records: int | None = Field(default=None, gt=0)
    query_params: dict[str, QueryValue] = Field(default_factory=dict)
    query_variants: tuple[dict[str, QueryValue], ...] = ()
    warning: str | None = None

    @model_validator(mode="after")
    def _incidents_need_class(self) -> "SourceConfig":
        if self.output == "incidents" and self.classification is None:
            raise ValueError(f"{self.dataset_id}: incident datasets need a classification")
        return self

    @property
    def source_url(self) -> str:
        """Primary URL, reported in provenance."""
        return self.source_urls[0]

    def effective_params(self) -> dict[str, QueryValue]:
        return {**DEFAULT_QUERY_PARAMS, **self.query_params}

    def tiers(self) -> list[tuple[str, dict[str, QueryValue]]]:
        """Ordered (url, params) pairs to attempt."""
        base = self.effective_params()
        variants = self.query_variants or ({},)
        return [(url, {**base, **variant}) for url in self.source_urls for variant in variants]
