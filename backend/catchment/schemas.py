from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TravelMode = Literal["driving", "walking", "bicycling", "transit"]
CalculationMethod = Literal["layer-based-intersection", "mock", "fallback-estimation"]

# Sector attributes summed into a catchment, keyed by their layer field name.
SECTOR_NUMERIC_FIELDS = (
    "male",
    "female",
    "p_t",
    "age_t0014",
    "age_t1529",
    "age_t3044",
    "age_t4559",
    "age_t60pl",
    "hh_t",
    "hh_size",
    "pp_prm",
    "pp_mio",
    "pp_euro",
    "pp_ci",
)


class Sector(BaseModel):
    """One demographic reporting unit as read from the sector layer."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)

    id: str | None = None
    name: str | None = None
    nis_code: str | None = Field(default=None, alias="nisCode")

    male: float = 0.0
    female: float = 0.0
    p_t: float = 0.0
    age_t0014: float = 0.0
    age_t1529: float = 0.0
    age_t3044: float = 0.0
    age_t4559: float = 0.0
    age_t60pl: float = 0.0
    hh_t: float = 0.0
    hh_size: float = 0.0
    pp_prm: float = 0.0
    pp_mio: float = 0.0
    pp_euro: float = 0.0
    pp_ci: float = 0.0

    geometry: dict[str, Any] | None = None

    @field_validator(*SECTOR_NUMERIC_FIELDS, mode="before")
    @classmethod
    def absent_counts_are_zero(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return 0.0
        return value

    @field_validator("id", "name", "nis_code", mode="before")
    @classmethod
    def identity_as_text(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @classmethod
    def from_feature(cls, feature: Any) -> "Sector":
        """Normalise an ArcGIS feature, GeoJSON feature or flat dict.

        Layer field names are matched case-insensitively.
        """
        if isinstance(feature, Sector):
            return feature
        if not isinstance(feature, dict):
            raise ValueError(f"Sector feature must be an object. Got {type(feature).__name__}")

        raw = feature.get("attributes")
        if not isinstance(raw, dict):
            raw = feature.get("properties")
        if not isinstance(raw, dict):
            raw = {key: value for key, value in feature.items() if key != "geometry"}

        attributes: dict[str, Any] = {}
        for key, value in raw.items():
            lowered = str(key).lower()
            if lowered == "niscode":
                attributes["nisCode"] = value
            elif lowered in {"id", "objectid", "fid"}:
                attributes.setdefault("id", value)
            else:
                attributes[lowered] = value
        if feature.get("id") is not None:
            attributes.setdefault("id", feature.get("id"))

        geometry = feature.get("geometry")
        if isinstance(geometry, dict):
            attributes["geometry"] = geometry
        return cls.model_validate(attributes)


class CatchmentRecord(BaseModel):
    """Published demographic summary for one travel-time break."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    total_population: int = Field(..., alias="totalPopulation")
    pourcent_man: int | None = Field(default=None, alias="pourcentMan")
    pourcent_women: int | None = Field(default=None, alias="pourcentWomen")
    pourcent_age0014: int | None = Field(default=None, alias="pourcentAge0014")
    pourcent_age1529: int | None = Field(default=None, alias="pourcentAge1529")
    pourcent_age3044: int | None = Field(default=None, alias="pourcentAge3044")
    pourcent_age4559: int | None = Field(default=None, alias="pourcentAge4559")
    pourcent_age60pl: int | None = Field(default=None, alias="pourcentAge60PL")
    total_households: int = Field(..., alias="totalHouseHolds")
    households_member: str | None = Field(default=None, alias="householdsMember")
    total_mio: str = Field(..., alias="totalMIO")
    purchase_power_person: str | None = Field(default=None, alias="purchasePowerPerson")


class SectorContribution(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sector_id: str | None = Field(default=None, alias="sectorId")
    name: str | None = None
    nis_code: str | None = Field(default=None, alias="nisCode")
    status: Literal["contributed", "no-overlap", "skipped"]
    overlap_factor: float = Field(default=0.0, alias="overlapFactor")
    coverage_percentage: float = Field(default=0.0, alias="coveragePercentage")
    full_coverage: bool = Field(default=False, alias="fullCoverage")
    contribution: dict[str, float] = Field(default_factory=dict)
    error: str | None = None


class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class CatchmentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location: Location
    travel_mode: TravelMode = Field(default="driving", alias="travelMode")
    drive_times: list[float] = Field(..., alias="driveTimes", min_length=1, max_length=10)
    show_demographics: bool = Field(default=True, alias="showDemographics")
    include_diagnostics: bool = Field(default=False, alias="includeDiagnostics")
    estimate_only: bool = Field(default=False, alias="estimateOnly")

    @field_validator("drive_times")
    @classmethod
    def validate_drive_times(cls, drive_times: list[float]) -> list[float]:
        for value in drive_times:
            if not 0 < value <= 180:
                raise ValueError(f"drive times must be in (0, 180] minutes. Got {value}")
        return drive_times


class EstimateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    drive_times: list[float] = Field(..., alias="driveTimes", min_length=1, max_length=10)

    @field_validator("drive_times")
    @classmethod
    def validate_drive_times(cls, drive_times: list[float]) -> list[float]:
        for value in drive_times:
            if not 0 < value <= 180:
                raise ValueError(f"drive times must be in (0, 180] minutes. Got {value}")
        return drive_times


class TravelTimePolygon(BaseModel):
    break_value: float
    rings: list[list[list[float]]] = Field(..., min_length=1)

    def as_geometry(self) -> dict[str, Any]:
        return {"rings": self.rings, "spatialReference": {"wkid": 4326}}


class CatchmentMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    calculated_at: datetime = Field(..., alias="calculatedAt")
    average_speed: float = Field(..., alias="averageSpeed")
    accessibility: int
    sector_count: int = Field(default=0, alias="sectorCount")
    skipped_sectors: int = Field(default=0, alias="skippedSectors")


class CatchmentResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    drive_time: float = Field(..., alias="driveTime")
    travel_mode: TravelMode = Field(..., alias="travelMode")
    calculation_method: CalculationMethod | None = Field(default=None, alias="calculationMethod")
    demographics: CatchmentRecord | None = None
    geometry: dict[str, Any] | None = None
    metadata: CatchmentMetadata | None = None
    diagnostics: list[SectorContribution] | None = None
    error: str | None = None


class CalculationInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    method: str
    timestamp: datetime
    total_areas: int = Field(..., alias="totalAreas")
    failed_areas: int = Field(default=0, alias="failedAreas")


class CatchmentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    catchment_results: list[CatchmentResult] = Field(..., alias="catchmentResults")
    search_params: CatchmentRequest = Field(..., alias="searchParams")
    calculation_info: CalculationInfo = Field(..., alias="calculationInfo")


class ErrorResponse(BaseModel):
    detail: str
