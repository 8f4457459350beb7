from relay.server.location import DEFAULT_SERVER_NAME, build_server_info, describe_location


class TestDescribeLocation:
    def test_known_region(self):
        assert describe_location("oregon") == "🇺🇸 US West (Oregon)"

    def test_unknown_region_is_pinned(self):
        assert describe_location("mumbai") == "📍 mumbai"

    def test_no_region_is_local(self):
        assert describe_location(None) == "🖥️ Local (Dev)"
        assert describe_location("") == "🖥️ Local (Dev)"


class TestBuildServerInfo:
    def test_defaults(self):
        info = build_server_info(None, None)

        assert info.name == DEFAULT_SERVER_NAME
        assert info.region == "local"

    def test_configured(self):
        info = build_server_info("EU Relay", "frankfurt")

        assert info.model_dump() == {"name": "EU Relay", "location": "🇩🇪 EU Central (Germany)", "region": "frankfurt"}
