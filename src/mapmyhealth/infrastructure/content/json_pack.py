import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from mapmyhealth.application.ports import ContentPackPort
from mapmyhealth.domain.models import ContentPack
from mapmyhealth.infrastructure.config import Settings
from mapmyhealth.infrastructure.content.validators import validate_content_pack


logger = logging.getLogger(__name__)


BUNDLED_PACK = Path(__file__).parent / "sore_throat_pack.json"


class ContentPackLoadError(Exception):
    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not load content pack {path}: {reason}")
        self.path = path
        self.reason = reason


def parse_content_pack(data: dict) -> ContentPack:
    pack = ContentPack(**data)
    for problem in validate_content_pack(pack):
        logger.warning("Content pack %s: %s", pack.meta.name, problem)
    return pack


class JsonContentPackAdapter(ContentPackPort):
    def __init__(self, path: Optional[str] = None, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.path = Path(path or self.settings.content_pack_path or BUNDLED_PACK)

    def load_content_pack(self) -> ContentPack:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.exception("Failed to read content pack %s", self.path)
            raise ContentPackLoadError(str(self.path), str(e)) from e

        try:
            pack = parse_content_pack(data)
        except ValidationError as e:
            logger.error("Content pack %s is malformed: %s", self.path, e)
            raise ContentPackLoadError(str(self.path), str(e)) from e

        logger.info(
            "Loaded content pack %s %s: %d findings, %d conditions, %d actions",
            pack.meta.name,
            pack.meta.version,
            len(pack.findings),
            len(pack.conditions),
            len(pack.actions),
        )
        return pack
