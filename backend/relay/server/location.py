"""Human-readable server location for the serverInfo greeting."""

from relay.messaging.types import ServerInfoData

DEFAULT_SERVER_NAME = "Co-op Relay"
LOCAL_REGION = "local"
LOCAL_LOCATION = "🖥️ Local (Dev)"

REGION_LABELS = {
    "oregon": "🇺🇸 US West (Oregon)",
    "ohio": "🇺🇸 US East (Ohio)",
    "virginia": "🇺🇸 US East (Virginia)",
    "frankfurt": "🇩🇪 EU Central (Germany)",
    "singapore": "🇸🇬 Asia (Singapore)",
}


def describe_location(region: str | None) -> str:
    if not region:
        return LOCAL_LOCATION
    return REGION_LABELS.get(region, f"📍 {region}")


def build_server_info(server_name: str | None, region: str | None) -> ServerInfoData:
    return ServerInfoData(
        name=server_name or DEFAULT_SERVER_NAME,
        location=describe_location(region),
        region=region or LOCAL_REGION,
    )
