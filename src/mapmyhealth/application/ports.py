from typing import Protocol

from mapmyhealth.domain.models import ContentPack


class ContentPackPort(Protocol):
    def load_content_pack(self) -> ContentPack:
        """
        Returns the findings/conditions/actions/test-performance catalog.
        Implementations are called once per process or session; the pack is read-only afterwards.
        """
        ...
