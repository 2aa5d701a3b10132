from __future__ import annotations

from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from shorewatch.analysis_pipeline import run_landsat_analysis
from shorewatch.config import COMPOSITE_CONFIG, get_all_config
from shorewatch.exceptions import (
    AnalysisError,
    ImagerySourceError,
    ResourceLimitExceeded,
    ShoreWatchError,
    ValidationError,
)

app = FastAPI(
    title="ShoreWatch API",
    version="0.1.0",
)


class AnalysisRunCreate(BaseModel):
    year_a: int = Field(default=COMPOSITE_CONFIG["YEAR_A"])
    year_b: int = Field(default=COMPOSITE_CONFIG["YEAR_B"])
    aoi: Optional[dict[str, Any]] = None
    scale: float = Field(default=COMPOSITE_CONFIG["SCALE"], ge=30)
    include_shorelines: bool = True


class ChangeReportOut(BaseModel):
    year_a: int
    year_b: int
    area_a_m2: float
    area_b_m2: float
    area_loss_m2: float
    area_loss_km2: float
    no_data: bool


class AnalysisRunOut(BaseModel):
    report: ChangeReportOut
    years: dict[str, Any]
    shorelines: Optional[dict[str, Any]] = None


def _http_error(e: ShoreWatchError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, ResourceLimitExceeded):
        return HTTPException(status_code=413, detail=str(e))
    if isinstance(e, ImagerySourceError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/config")
def get_config() -> dict[str, Any]:
    return get_all_config()


@app.post("/analysis-runs", response_model=AnalysisRunOut)
def create_analysis_run(payload: AnalysisRunCreate) -> AnalysisRunOut:
    try:
        result = run_landsat_analysis(
            aoi=payload.aoi,
            year_a=payload.year_a,
            year_b=payload.year_b,
            scale=payload.scale,
        )
    except (ValidationError, ResourceLimitExceeded, ImagerySourceError, AnalysisError) as e:
        raise _http_error(e) from e

    summary = result.summary()
    shorelines = None
    if payload.include_shorelines:
        shorelines = {
            str(products.year): products.shoreline.to_feature_collection()
            for products in (result.before, result.after)
        }

    return AnalysisRunOut(
        report=ChangeReportOut(**summary["report"]),
        years=summary["years"],
        shorelines=shorelines,
    )


if __name__ == "__main__":
    uvicorn.run("shorewatch.main:app", host="0.0.0.0", port=8000, reload=True)
