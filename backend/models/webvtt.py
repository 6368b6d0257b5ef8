from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WebVTTObjectPayload(BaseModel):
	"""One detected object as the editor sends it.

	Every field is optional: objects without a name are dropped later by the
	merge step rather than failing the whole request.
	"""
	model_config = ConfigDict(extra="ignore")

	id: Optional[str] = None
	name: Optional[str] = None
	code: Optional[str] = None
	additionalInfo: Optional[str] = None
	dlReservoirDomain: Optional[str] = None
	category: Optional[str] = None
	confidence: Optional[float] = None
	videoCurrentTime: Optional[float] = None
	# recomputed on save, accepted only for compatibility
	finallink: Optional[str] = None
	coordinates: Optional[dict[str, Any]] = None
	position: Optional[dict[str, Any]] = None
	polygon: Any = None

	@field_validator("videoCurrentTime", mode="before")
	@classmethod
	def _coerce_time(cls, v):
		if v is None or v == "":
			return None
		try:
			return float(v)
		except (TypeError, ValueError):
			return None

	def to_object_fields(self) -> dict[str, Any]:
		"""Map editor keys onto AnnotatedObject fields, leaving out what was not sent."""
		fields: dict[str, Any] = {
			"name": self.name,
			"temporal_marker": self.videoCurrentTime,
			"code": self.code,
			"category": self.category,
			"domain": self.dlReservoirDomain,
			"info": self.additionalInfo,
			"geometry": self.coordinates or self.position,
			"polygon": self.polygon,
		}
		return {key: value for key, value in fields.items() if value is not None}


class WebVTTSavePayload(BaseModel):
	videoId: Optional[str] = ""
	videoFileName: Optional[str] = ""
	videoFolder: Optional[str] = None
	objects: list[WebVTTObjectPayload] = Field(default_factory=list)
	duration: Optional[float] = 0.0
	timestamp: Optional[float] = None

	@field_validator("duration", mode="before")
	@classmethod
	def _coerce_duration(cls, v):
		try:
			return float(v) if v is not None and v != "" else 0.0
		except (TypeError, ValueError):
			return 0.0


class CoordinateDeletePayload(BaseModel):
	videoFileName: str
	objectName: str
	videoFolder: Optional[str] = None


class CoordinateUpdatePayload(BaseModel):
	videoFileName: str
	oldName: str
	newName: str
	videoFolder: Optional[str] = None
