import math
import unittest
from unittest import mock

from wikidatable.caching import CitationMetadataCache
from wikidatable.citoid import CitationMetadataResolver
from wikidatable.engine import TemplateEngine, apply_substitutions, find_markers, refslot_pattern
from wikidatable.errors import ResolutionError
from wikidatable.models import CitationMetadata, ClaimResolution, HeadingConfig, Marker, Reference, ResolvedMarker
from wikidatable.sources import QueryReferenceSource
from wikidatable.sparql import SparqlClient


class InMemorySource:
    """ReferenceSource fake backed by a {(entity, property): ClaimResolution} dict."""

    name = "memory"

    def __init__(self, claims):
        self.claims = claims
        self.calls = []

    def resolve(self, entity_id, property_id):
        self.calls.append((entity_id, property_id))
        try:
            return self.claims[(entity_id, property_id)]
        except KeyError:
            raise ResolutionError("NO_SOLUTIONS", "no solutions found for given parameters")


def offline_resolver(entries=None):
    session = mock.Mock()
    session.get.side_effect = AssertionError("network access not expected")
    return CitationMetadataResolver(cache=CitationMetadataCache(seed=entries or {}), session=session)


class FindMarkersTests(unittest.TestCase):
    def test_scan_order_and_tolerance(self) -> None:
        text = "a <!--DATASLOT:pop:uk--> b <!--   dataslot:Area:fr   --> c <!-- DATASLOT:pop:uk -->"
        markers = find_markers(text)
        self.assertEqual(
            markers,
            [
                Marker("<!--DATASLOT:pop:uk-->", "pop", "uk"),
                Marker("<!--   dataslot:Area:fr   -->", "Area", "fr"),
                Marker("<!-- DATASLOT:pop:uk -->", "pop", "uk"),
            ],
        )

    def test_refslot_pattern_escapes_keys(self) -> None:
        pattern = refslot_pattern("gdp (usd)", "a.b")
        self.assertTrue(pattern.search("<!-- refslot:gdp (usd):a.b -->"))
        self.assertFalse(pattern.search("<!-- REFSLOT:gdp (usd):axb -->"))


class ApplySubstitutionsTests(unittest.TestCase):
    def test_pure_substitution(self) -> None:
        marker = Marker("<!-- DATASLOT:pop:uk -->", "pop", "uk")
        resolved = ResolvedMarker(marker=marker, value=2.5, reference=Reference(), citation=r"<ref>[http://x]\1</ref>")
        text = "<!-- DATASLOT:pop:uk --> <!-- REFSLOT:pop:uk --> <!-- DATASLOT:pop:uk --><!--REFSLOT:pop:uk-->"
        self.assertEqual(
            apply_substitutions(text, [resolved]),
            r"2.5000000000 <ref>[http://x]\1</ref> 2.5000000000<ref>[http://x]\1</ref>",
        )

    def test_no_citation_leaves_refslot(self) -> None:
        marker = Marker("<!-- DATASLOT:pop:uk -->", "pop", "uk")
        resolved = ResolvedMarker(marker=marker, value=1.0, reference=Reference())
        text = "<!-- DATASLOT:pop:uk --><!-- REFSLOT:pop:uk -->"
        self.assertEqual(apply_substitutions(text, [resolved]), "1.0000000000<!-- REFSLOT:pop:uk -->")


class TemplateEngineTests(unittest.TestCase):
    def test_end_to_end(self) -> None:
        source = InMemorySource(
            {("Q1", "P1082"): ClaimResolution(1234567.0, Reference(found=True, url="http://x", published="2020-01-01"))}
        )
        engine = TemplateEngine(source, offline_resolver({"http://x": CitationMetadata("Census", "en", "Stats")}))
        output = engine.resolve(
            "<!-- DATASLOT:pop:country1 --> <!-- REFSLOT:pop:country1 -->",
            {"pop": {"data": "P1082"}},
            {"country1": {"P1082": "Q1"}},
        )
        self.assertIn("1234567.0000000000", output)
        self.assertIn("url=http://x", output)
        self.assertIn("date=2020-01-01", output)
        self.assertEqual(
            output,
            "1234567.0000000000 <ref>{{cite web|url=http://x|title=Census|date=2020-01-01"
            "|access-date=|language=en|website=Stats}}.</ref>",
        )

    def test_all_occurrences_replaced_and_resolved_once(self) -> None:
        source = InMemorySource({("Q1", "P1082"): ClaimResolution(3.0, Reference())})
        engine = TemplateEngine(source, offline_resolver())
        text = "<!-- DATASLOT:pop:uk --> | <!-- DATASLOT:pop:uk --> | <!-- DATASLOT:pop:uk -->"
        output = engine.resolve(text, {"pop": {"data": "P1082"}}, {"uk": {"P1082": "Q1"}})
        self.assertEqual(output, "3.0000000000 | 3.0000000000 | 3.0000000000")
        self.assertEqual(source.calls, [("Q1", "P1082")])

    def test_ratio_marker(self) -> None:
        source = InMemorySource(
            {
                ("Q1", "P6343"): ClaimResolution(30.0, Reference(found=True, url="http://a")),
                ("Q1", "P1082"): ClaimResolution(120.0, Reference()),
            }
        )
        engine = TemplateEngine(source, offline_resolver({"http://a": CitationMetadata()}))
        output = engine.resolve(
            "<!-- DATASLOT:urban:uk --><!-- REFSLOT:urban:uk -->",
            {"urban": {"data": "P6343", "per": "P1082"}},
            {"uk": {"P6343": "Q1"}},
        )
        self.assertEqual(output, "25.0000000000<ref>Calculated from [http://a] and an unknown source.</ref>")
        self.assertEqual(source.calls, [("Q1", "P6343"), ("Q1", "P1082")])

    def test_ratio_value_is_exact(self) -> None:
        source = InMemorySource(
            {("Q1", "P1"): ClaimResolution(1.0, Reference()), ("Q1", "P2"): ClaimResolution(3.0, Reference())}
        )
        resolved = TemplateEngine(source, offline_resolver()).resolve_markers(
            "<!-- DATASLOT:share:uk -->",
            {"share": HeadingConfig("share", "P1", "P2")},
            {"uk": {"P1": "Q1", "P2": "Q1"}},
        )
        self.assertEqual(resolved[0].value, (1.0 / 3.0) * 100.0)
        self.assertTrue(resolved[0].is_ratio)

    def test_ratio_with_zero_divisor(self) -> None:
        source = InMemorySource(
            {
                ("Q1", "P1"): ClaimResolution(5.0, Reference()),
                ("Q2", "P1"): ClaimResolution(0.0, Reference()),
                ("Q1", "P2"): ClaimResolution(0.0, Reference()),
                ("Q2", "P2"): ClaimResolution(0.0, Reference()),
            }
        )
        resolved = TemplateEngine(source, offline_resolver()).resolve_markers(
            "<!-- DATASLOT:share:a --><!-- DATASLOT:share:b -->",
            {"share": {"data": "P1", "per": "P2"}},
            {"a": "Q1", "b": "Q2"},
        )
        self.assertEqual(resolved[0].value, math.inf)
        self.assertTrue(math.isnan(resolved[1].value))

    def test_secondary_failure_leaves_marker(self) -> None:
        source = InMemorySource({("Q1", "P6343"): ClaimResolution(30.0, Reference(found=True, url="http://a"))})
        engine = TemplateEngine(source, offline_resolver())
        text = "<!-- DATASLOT:urban:uk --><!-- REFSLOT:urban:uk -->"
        with self.assertLogs("wikidatable.engine", level="WARNING") as logs:
            output = engine.resolve(text, {"urban": {"data": "P6343", "per": "P1082"}}, {"uk": {"P6343": "Q1"}})
        self.assertEqual(output, text)
        self.assertIn("perProp P1082 in urban", logs.output[0])

    def test_primary_failure_leaves_marker(self) -> None:
        engine = TemplateEngine(InMemorySource({}), offline_resolver())
        text = "<!-- DATASLOT:pop:uk --> <!-- REFSLOT:pop:uk -->"
        output = engine.resolve(text, {"pop": {"data": "P1082"}}, {"uk": {"P1082": "Q1"}}, config_title="T.json")
        self.assertEqual(output, text)
        self.assertEqual(engine.stats["markers_failed"], 1)

    def test_malformed_query_response_leaves_marker(self) -> None:
        session = mock.Mock()
        session.get.return_value.status_code = 200
        session.get.return_value.json.return_value = None
        source = QueryReferenceSource(SparqlClient(session=session, retry_delay=0))
        engine = TemplateEngine(source, offline_resolver())
        text = "<!-- DATASLOT:pop:uk --> <!-- REFSLOT:pop:uk -->"
        with self.assertLogs("wikidatable.engine", level="WARNING"):
            output = engine.resolve(text, {"pop": {"data": "P1082"}}, {"uk": {"P1082": "Q1"}})
        self.assertEqual(output, text)
        self.assertEqual(engine.stats["markers_failed"], 1)

    def test_failed_data_key_skips_later_markers(self) -> None:
        source = InMemorySource({("Q2", "P1082"): ClaimResolution(7.0, Reference())})
        engine = TemplateEngine(source, offline_resolver())
        text = "<!-- DATASLOT:pop:xx --> <!-- DATASLOT:area:xx --> <!-- DATASLOT:pop:fr -->"
        with self.assertLogs("wikidatable.engine", level="WARNING") as logs:
            output = engine.resolve(text, {"pop": {"data": "P1082"}, "area": {"data": "P2046"}}, {"fr": {"P1082": "Q2"}})
        self.assertEqual(output, "<!-- DATASLOT:pop:xx --> <!-- DATASLOT:area:xx --> 7.0000000000")
        self.assertEqual(len(logs.output), 1)
        self.assertIn("data key xx", logs.output[0])
        self.assertEqual(engine.stats["markers_skipped"], 1)

    def test_unknown_heading_and_heading_without_data(self) -> None:
        source = InMemorySource({("Q1", "P1082"): ClaimResolution(1.0, Reference())})
        engine = TemplateEngine(source, offline_resolver())
        text = "<!-- DATASLOT:nope:uk --> <!-- DATASLOT:bad:uk --> <!-- DATASLOT:pop:uk -->"
        output = engine.resolve(
            text,
            {"bad": {"per": "P1082"}, "pop": {"data": "P1082"}},
            {"uk": {"P1082": "Q1"}},
        )
        self.assertEqual(output, "<!-- DATASLOT:nope:uk --> <!-- DATASLOT:bad:uk --> 1.0000000000")

    def test_missing_entity_mapping_for_property(self) -> None:
        engine = TemplateEngine(InMemorySource({}), offline_resolver())
        text = "<!-- DATASLOT:pop:uk -->"
        self.assertEqual(engine.resolve(text, {"pop": {"data": "P1082"}}, {"uk": {"P31": "Q1"}}), text)


if __name__ == "__main__":
    unittest.main()
