"""Tests for connection URL publication."""

import os

import pytest

from kube_tunnel.events import EventKind
from kube_tunnel.url import UrlPublisher, derive_url, publish_if_absent


class TestPublishIfAbsent:
    """Test the pure publication decision."""

    def test_derives_url_when_absent(self):
        assert publish_if_absent(None, 9200) == "http://localhost:9200"
        assert publish_if_absent("", 9201) == "http://localhost:9201"

    @pytest.mark.parametrize("port", [1, 9200, 9201, 19250, 65535])
    def test_never_overrides_existing_url(self, port):
        assert publish_if_absent("https://es.example.com:9243", port) is None

    def test_derive_url(self):
        assert derive_url(19200) == "http://localhost:19200"


class TestUrlPublisher:
    """Test UrlPublisher against a mapping surface."""

    def test_publishes_into_surface(self, sink):
        surface: dict[str, str] = {}
        publisher = UrlPublisher(surface, sink=sink)

        url = publisher.publish(9200)

        assert url == "http://localhost:9200"
        assert surface == {"ELASTICSEARCH_URL": "http://localhost:9200"}
        assert publisher.url == "http://localhost:9200"
        assert publisher.published_url == "http://localhost:9200"
        event = sink.of_kind(EventKind.URL_PUBLISHED)[0]
        assert event.data == {
            "key": "ELASTICSEARCH_URL",
            "url": "http://localhost:9200",
            "port": 9200,
        }

    @pytest.mark.parametrize("port", [9200, 9201, 40000])
    def test_explicit_url_is_never_overwritten(self, port):
        surface = {"ELASTICSEARCH_URL": "https://es.internal:9200"}
        publisher = UrlPublisher(surface)

        assert publisher.is_explicit
        assert publisher.publish(port) is None
        assert surface["ELASTICSEARCH_URL"] == "https://es.internal:9200"

    def test_republishes_on_port_change(self):
        surface: dict[str, str] = {}
        publisher = UrlPublisher(surface)

        publisher.publish(9200)
        assert publisher.publish(9200) is None
        assert publisher.publish(9201) == "http://localhost:9201"
        assert surface["ELASTICSEARCH_URL"] == "http://localhost:9201"

    def test_url_set_externally_after_publish_wins(self):
        surface: dict[str, str] = {}
        publisher = UrlPublisher(surface)
        publisher.publish(9200)

        surface["ELASTICSEARCH_URL"] = "https://other:9243"

        assert publisher.publish(9201) is None
        assert publisher.is_explicit
        assert surface["ELASTICSEARCH_URL"] == "https://other:9243"

    def test_configured_url_is_explicit(self):
        surface: dict[str, str] = {}
        publisher = UrlPublisher(surface, configured_url="https://es.example.com:9243")

        assert publisher.is_explicit
        assert publisher.url == "https://es.example.com:9243"
        assert publisher.publish(9200) is None
        assert surface == {}

    def test_empty_value_is_not_explicit(self):
        surface = {"ELASTICSEARCH_URL": ""}
        publisher = UrlPublisher(surface)

        assert not publisher.is_explicit
        assert publisher.url is None
        assert publisher.publish(9200) == "http://localhost:9200"

    def test_custom_key(self):
        surface: dict[str, str] = {}
        UrlPublisher(surface, key="ES_URL").publish(9300)
        assert surface == {"ES_URL": "http://localhost:9300"}

    def test_defaults_to_os_environ(self, monkeypatch):
        monkeypatch.delenv("ELASTICSEARCH_URL", raising=False)
        publisher = UrlPublisher()

        publisher.publish(9205)

        assert os.environ["ELASTICSEARCH_URL"] == "http://localhost:9205"
