from mapmyhealth.application.ports import ContentPackPort
from mapmyhealth.domain.models import ContentPack


class InMemoryContentPackAdapter(ContentPackPort):
    def __init__(self, pack: ContentPack):
        self.pack = pack

    def load_content_pack(self) -> ContentPack:
        return self.pack
