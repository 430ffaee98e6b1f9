import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from cadence.domain.ports import BuriedStore

logger = logging.getLogger(__name__)


class PluginData(BaseModel):
    """On-disk state kept between runs."""

    buried: set[str] = Field(default_factory=set)


class JsonBuriedStore(BuriedStore):
    """Buried card fingerprints persisted as `{"buried": [...]}`."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def _read(self) -> PluginData:
        if not self.path.exists():
            return PluginData()
        try:
            return PluginData.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable data file {self.path}: {e}")
            return PluginData()

    def _write(self, data: PluginData) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"buried": sorted(data.buried)}
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def load(self) -> set[str]:
        return set(self._read().buried)

    def bury(self, fingerprint: str) -> None:
        data = self._read()
        data.buried.add(fingerprint)
        self._write(data)

    def clear(self) -> None:
        self._write(PluginData())
