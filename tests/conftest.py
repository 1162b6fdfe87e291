"""Shared fixtures for the guide tests."""

from datetime import datetime, timezone

import pytest

from epg_guide.services.fetch_coordinator import reset_fetch_coordinator


MINIMAL_XMLTV = """<?xml version="1.0" encoding="UTF-8"?>
<tv>
  <channel id="c1"><display-name>Channel One</display-name></channel>
  <programme channel="c1" start="20240101120000" stop="20240101130000">
    <title>News</title>
    <desc>actualité locale</desc>
  </programme>
</tv>
"""

SAMPLE_XMLTV = """<?xml version="1.0" encoding="UTF-8"?>
<tv generator-info-name="test">
  <channel id="tf1.fr">
    <display-name lang="fr">TF1</display-name>
    <icon src="https://example.com/tf1.png"/>
  </channel>
  <channel id="canalplus.fr">
    <display-name>Canal+ Sport</display-name>
  </channel>
  <programme channel="tf1.fr" start="20240101100000 +0100" stop="20240101110000 +0100">
    <title lang="fr">Le Journal</title>
    <desc lang="fr">Les informations du jour</desc>
    <category lang="fr">Journal</category>
  </programme>
  <programme channel="tf1.fr" start="20240101110000 +0100" stop="20240101123000 +0100">
    <title>Film du dimanche</title>
    <category>Film</category>
    <category>Drame</category>
    <credits><actor>Jean Dupont</actor><actor>Marie Curie</actor></credits>
  </programme>
  <programme channel="canalplus.fr" start="20240101090000 +0000" stop="20240101113000 +0000">
    <title>Ligue 1 &amp; Co</title>
    <category>Sport</category>
  </programme>
  <programme channel="unknown.fr" start="20240101100000 +0000" stop="20240101110000 +0000">
    <title>Mystery</title>
  </programme>
</tv>
"""

# 2024-01-01 10:15 UTC: Le Journal (09:00-10:00 UTC) has ended,
# the film (10:00-11:30 UTC) and Ligue 1 (09:00-11:30 UTC) are live
SAMPLE_NOW = datetime(2024, 1, 1, 10, 15, tzinfo=timezone.utc)

SAMPLE_M3U = """#EXTM3U
#EXTINF:-1 tvg-id="tf1.fr" tvg-name="TF1" tvg-logo="https://example.com/tf1-hd.png" group-title="General",TF1 HD
http://stream.example.com/tf1.m3u8
#EXTINF:-1 tvg-id="lequipe.fr" tvg-name="L'Equipe" group-title="Sports;News" tvg-language="French" tvg-country="FR",L'Equipe
# a comment line
http://stream.example.com/lequipe.m3u8
"""


@pytest.fixture(autouse=True)
def fresh_coordinator():
    reset_fetch_coordinator()
    yield
    reset_fetch_coordinator()


@pytest.fixture
def minimal_xmltv() -> bytes:
    return MINIMAL_XMLTV.encode("utf-8")


@pytest.fixture
def sample_xmltv() -> bytes:
    return SAMPLE_XMLTV.encode("utf-8")


@pytest.fixture
def sample_now() -> datetime:
    return SAMPLE_NOW


@pytest.fixture
def sample_m3u() -> str:
    return SAMPLE_M3U
