"""
Conference room URLs.

A room URL is the server URL, the room name, and an ordered list of
``config.*`` overrides carried in the URL hash fragment.
"""

from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field

LOAD_TEST_PAGE = "static/load-test/load-test-participant.html"

# Fragments every conference room starts with.
BASE_ROOM_CONFIG = (
    "config.p2p.useStunTurn=true",
    "config.disable1On1Mode=false",
    "config.testing.noAutoPlayVideo=true",
    "config.pcStatsInterval=10000",
)


def region_fragment(region: str) -> str:
    """Config fragment pinning a participant to a deployment region."""
    return f'config.deploymentInfo.userRegion="{region}"'


class RoomUrl(BaseModel):
    """Immutable room URL with config fragments."""

    model_config = ConfigDict(frozen=True)

    server_url: str = Field(description="Conference server base URL")
    room_name: str = Field(description="Room name")
    config: tuple[str, ...] = Field(default=(), description="Ordered config fragments")

    def with_config(self, *entries: str) -> "RoomUrl":
        """Return a copy with extra config fragments appended."""
        return self.model_copy(update={"config": self.config + tuple(entries)})

    def to_url(self) -> str:
        """Render the full URL."""
        url = f"{self.server_url.rstrip('/')}/{self.room_name}"
        if self.config:
            url += "#" + "&".join(self.config)
        return url

    def __str__(self) -> str:
        return self.to_url()


def conference_room(server_url: str, room_name: str, enable_p2p: bool) -> RoomUrl:
    """Build the base room URL for one conference."""
    return RoomUrl(
        server_url=server_url,
        room_name=room_name,
        config=BASE_ROOM_CONFIG + (f"config.p2p.enabled={'true' if enable_p2p else 'false'}",),
    )


def load_test_url(
    room: RoomUrl,
    mute_video: bool,
    mute_audio: bool,
    region: str | None = None,
) -> str:
    """
    Render the lightweight load-test page URL for a room.

    Senders get ``localVideo``/``localAudio`` switched on; the room name is
    passed JSON-quoted and URL-encoded.
    """
    url = (
        f"{room.server_url.rstrip('/')}/{LOAD_TEST_PAGE}"
        f"#roomName={quote(chr(34) + room.room_name + chr(34), safe='')}"
    )
    if not mute_video:
        url += "&localVideo=true"
    if not mute_audio:
        url += "&localAudio=true"
    if region is not None:
        url += "&" + region_fragment(region)
    return url
