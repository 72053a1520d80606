import pytest

from nanolink.settings import Settings

SAMPLE_TRIG = """@prefix this: <https://w3id.org/np/RAexample> .
@prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .
@prefix dct: <http://purl.org/dc/terms/> .
@prefix cito: <http://purl.org/spar/cito/> .

sub:assertion {
  sub:quote cito:quotes <https://doi.org/10.1/abc> .
  <https://doi.org/10.1/abc> cito:hasQuotedText "sample quote" ;
    rdfs:comment "worth citing" .
}

sub:pubinfo {
  this: rdfs:label "Example Title" ;
    dct:created "2023-05-01T00:00:00"^^xsd:dateTime .
}
"""


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path)


@pytest.fixture
def sample_trig() -> str:
    return SAMPLE_TRIG
