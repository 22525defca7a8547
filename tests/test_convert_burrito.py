"""
Tests for the Burrito converter: documents, trails, placeholders and packs.
"""

import copy
import json
import logging
import struct

import pytest

from burrito_assets import UNKNOWN_POI, UNKNOWN_POI_TEXTURE, UNKNOWN_TRAIL, UNKNOWN_TRAIL_TEXTURE, PlaceholderStager
from convert_burrito import (
    MissingTrailFile,
    convert_document,
    convert_marker_file,
    convert_pack,
    directory_reader,
)
from taco_xml import ParserConfig, parse_marker_xml


def trail_bytes(map_id, points):
    data = struct.pack('<ii', 0, map_id)
    for p in points:
        data += struct.pack('<3f', *p)
    return data


CATEGORIES = """
  <MarkerCategory name="a" iconFile="T1">
    <MarkerCategory name="b">
      <MarkerCategory name="c" iconFile="T3"/>
    </MarkerCategory>
  </MarkerCategory>
  <MarkerCategory name="plain"/>
"""


def document(body, categories=CATEGORIES):
    return parse_marker_xml(f'<OverlayData>{categories}<POIs>{body}</POIs></OverlayData>')


@pytest.fixture
def pack(tmp_path):
    data = tmp_path / 'Data'
    data.mkdir()
    (data / 'one.trl').write_bytes(trail_bytes(50, [(1.0, 2.0, 3.0), (4.0, 5.0, 6.0)]))
    (data / 'two.trl').write_bytes(trail_bytes(1206, [(-1.0, 0.5, 8.0)]))
    (data / 'short.trl').write_bytes(b'\x00\x00\x00')
    return tmp_path


class TestConvertPois:

    def test_direct_icon_wins(self, pack):
        doc = document('<POI MapID="15" xpos="1" ypos="2" zpos="3" type="a.b.c" iconFile="Data/own.png"/>')
        out = convert_document(doc, directory_reader(pack))

        assert out == {'15': {'icons': [{'position': [1.0, 2.0, 3.0], 'texture': 'Data/own.png'}], 'paths': []}}

    def test_icon_from_category(self, pack):
        doc = document("""
            <POI MapID="15" xpos="0" ypos="0" zpos="0" type="a.b.c"/>
            <POI MapID="15" xpos="1" ypos="1" zpos="1" type="a.b.x"/>
        """)
        icons = convert_document(doc, directory_reader(pack))['15']['icons']
        assert [i['texture'] for i in icons] == ['T3', 'T1']

    def test_icons_grouped_by_map_in_order(self, pack):
        doc = document("""
            <POI MapID="15" xpos="1" ypos="0" zpos="0" type="a"/>
            <POI MapID="38" xpos="2" ypos="0" zpos="0" type="a"/>
            <POI MapID="15" xpos="3" ypos="0" zpos="0" type="a"/>
        """)
        out = convert_document(doc, directory_reader(pack))

        assert set(out) == {'15', '38'}
        assert [i['position'][0] for i in out['15']['icons']] == [1.0, 3.0]
        assert [i['position'][0] for i in out['38']['icons']] == [2.0]

    def test_unresolved_type_gets_placeholder_once(self, pack, caplog):
        pois = ''.join(f'<POI MapID="15" xpos="{i}" ypos="0" zpos="0" type="plain.x"/>' for i in range(10))
        stager = PlaceholderStager(pack)

        with caplog.at_level(logging.WARNING, logger='convert_burrito'):
            out = convert_document(document(pois), directory_reader(pack), stager)

        icons = out['15']['icons']
        assert len(icons) == 10
        assert {i['texture'] for i in icons} == {UNKNOWN_POI_TEXTURE}
        assert [p.name for p in (pack / 'burrito').iterdir()] == [UNKNOWN_POI]
        assert 'Unknown POI texture for POI: plain.x' in caplog.text

    def test_no_category_tree_uses_placeholder(self, pack):
        doc = document('<POI MapID="15" xpos="0" ypos="0" zpos="0" type="a"/>', categories='')
        out = convert_document(doc, directory_reader(pack))
        assert out['15']['icons'][0]['texture'] == UNKNOWN_POI_TEXTURE

    def test_malformed_pois_skipped(self, pack, caplog):
        doc = document("""
            <POI xpos="0" ypos="0" zpos="0" type="a"/>
            <POI MapID="15" xpos="abc" ypos="0" zpos="0" type="a"/>
            <POI MapID="15" ypos="0" zpos="0" type="a"/>
            <POI/>
            <POI MapID="15" xpos="9" ypos="0" zpos="0" type="a"/>
        """)
        with caplog.at_level(logging.WARNING, logger='convert_burrito'):
            out = convert_document(doc, directory_reader(pack))

        assert out == {'15': {'icons': [{'position': [9.0, 0.0, 0.0], 'texture': 'T1'}], 'paths': []}}
        assert caplog.text.count('Skipping POI') == 4

    def test_lowercase_attribute_names(self, pack):
        doc = document('<POI mapid="22" xpos="0" ypos="0" zpos="0" Type="a.b.c"/>')
        assert convert_document(doc, directory_reader(pack))['22']['icons'][0]['texture'] == 'T3'

    def test_uncoerced_attribute_strings(self, pack):
        config = ParserConfig(coerce_values=False)
        doc = parse_marker_xml(
            f'<OverlayData>{CATEGORIES}<POIs>'
            '<POI MapID="15" xpos="1.5" ypos=" -2" zpos="3" type="a.b.c"/>'
            '<POI MapID="38" xpos="0" ypos="0" zpos="0" type="a"/>'
            '</POIs></OverlayData>',
            config,
        )
        out = convert_document(doc, directory_reader(pack), config=config)

        assert out['15']['icons'] == [{'position': [1.5, -2.0, 3.0], 'texture': 'T3'}]
        assert out['38']['icons'] == [{'position': [0.0, 0.0, 0.0], 'texture': 'T1'}]

    def test_leading_zero_map_id(self, pack):
        doc = document('<POI MapID="015" xpos="0" ypos="0" zpos="0" type="a"/>')
        assert list(convert_document(doc, directory_reader(pack))) == ['15']

    @pytest.mark.parametrize('value', ['nan', 'inf', 'true', '1,5'])
    def test_non_numeric_coordinate_skipped(self, pack, value, caplog):
        doc = document(f'<POI MapID="15" xpos="{value}" ypos="0" zpos="0" type="a"/>')
        with caplog.at_level(logging.WARNING, logger='convert_burrito'):
            assert convert_document(doc, directory_reader(pack)) == {}
        assert 'Skipping POI' in caplog.text


class TestConvertTrails:

    def test_trail_keyed_by_decoded_map_id(self, pack):
        doc = document('<Trail MapID="999" trailData="Data/one.trl" texture="Data/arrow.png"/>')
        out = convert_document(doc, directory_reader(pack))

        assert out == {'50': {'icons': [], 'paths': [{
            'texture': 'Data/arrow.png',
            'points': [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]],
        }]}}

    def test_windows_separators(self, pack):
        doc = document('<Trail trailData="Data\\two.trl" texture="t.png"/>')
        out = convert_document(doc, directory_reader(pack))
        assert out['1206']['paths'][0]['points'] == [[-1.0, 0.5, 8.0]]

    def test_missing_file_does_not_stop_next_trail(self, pack, caplog):
        doc = document("""
            <Trail trailData="Data/gone.trl" texture="t.png"/>
            <Trail trailData="Data/one.trl" texture="t.png"/>
        """)
        with caplog.at_level(logging.ERROR, logger='convert_burrito'):
            out = convert_document(doc, directory_reader(pack))

        assert list(out) == ['50']
        assert len(out['50']['paths']) == 1
        assert 'Data/gone.trl' in caplog.text

    def test_malformed_trail_isolated(self, pack, caplog):
        doc = document("""
            <Trail trailData="Data/short.trl" texture="t.png"/>
            <Trail trailData="Data/two.trl" texture="t.png"/>
        """)
        with caplog.at_level(logging.ERROR, logger='convert_burrito'):
            out = convert_document(doc, directory_reader(pack))

        assert list(out) == ['1206']
        assert 'Data/short.trl' in caplog.text

    def test_reader_failure_of_any_kind_isolated(self, pack):
        def broken_reader(path):
            raise RuntimeError('disk on fire')

        doc = document('<Trail trailData="Data/one.trl" texture="t.png"/>')
        assert convert_document(doc, broken_reader) == {}

    def test_missing_texture_placeholder(self, pack):
        doc = document("""
            <Trail trailData="Data/one.trl"/>
            <Trail trailData="Data/two.trl"/>
        """)
        out = convert_document(doc, directory_reader(pack), PlaceholderStager(pack))

        assert out['50']['paths'][0]['texture'] == UNKNOWN_TRAIL_TEXTURE
        assert out['1206']['paths'][0]['texture'] == UNKNOWN_TRAIL_TEXTURE
        assert [p.name for p in (pack / 'burrito').iterdir()] == [UNKNOWN_TRAIL]

    def test_unwritable_bundle_keeps_converting(self, pack, caplog):
        blocked = pack / 'blocked'
        blocked.write_bytes(b'a file, not a directory')
        doc = document("""
            <POI MapID="50" xpos="0" ypos="0" zpos="0" type="plain.x"/>
            <POI MapID="50" xpos="1" ypos="0" zpos="0" type="plain.y"/>
            <Trail trailData="Data/one.trl"/>
            <Trail trailData="Data/two.trl" texture="t.png"/>
        """)
        with caplog.at_level(logging.ERROR, logger='convert_burrito'):
            out = convert_document(doc, directory_reader(pack), PlaceholderStager(blocked))

        assert [i['texture'] for i in out['50']['icons']] == [UNKNOWN_POI_TEXTURE] * 2
        assert out['50']['paths'][0]['texture'] == UNKNOWN_TRAIL_TEXTURE
        assert out['1206']['paths'] == [{'texture': 't.png', 'points': [[-1.0, 0.5, 8.0]]}]
        assert caplog.text.count('Cannot stage placeholder') == 3

    def test_trail_without_data_attribute_skipped(self, pack, caplog):
        doc = document('<Trail texture="t.png"/><Trail trailData="Data/one.trl" texture="t.png"/>')
        with caplog.at_level(logging.WARNING, logger='convert_burrito'):
            out = convert_document(doc, directory_reader(pack))
        assert list(out) == ['50']
        assert 'without trailData' in caplog.text

    def test_pois_and_trails_share_map_entry(self, pack):
        doc = document("""
            <POI MapID="50" xpos="0" ypos="0" zpos="0" type="a"/>
            <Trail trailData="Data/one.trl" texture="t.png"/>
        """)
        entry = convert_document(doc, directory_reader(pack))['50']
        assert len(entry['icons']) == 1
        assert len(entry['paths']) == 1

    def test_routes_ignored(self, pack):
        doc = document('<Route MapID="15" Name="r"><POI MapID="15" xpos="0" ypos="0" zpos="0"/></Route>')
        assert convert_document(doc, directory_reader(pack)) == {}


class TestDocumentShape:

    def test_unwrapped_equals_wrapped(self, pack):
        doc = document("""
            <POI MapID="15" xpos="1" ypos="2" zpos="3" type="a.b.c"/>
            <Trail trailData="Data/one.trl" texture="t.png"/>
        """)
        wrapped = copy.deepcopy(doc)
        pois = wrapped['OverlayData']['POIs']
        pois['POI'] = [pois['POI']]
        pois['Trail'] = [pois['Trail']]

        reader = directory_reader(pack)
        assert isinstance(doc['OverlayData']['POIs']['POI'], dict)
        assert convert_document(doc, reader) == convert_document(wrapped, reader)

    @pytest.mark.parametrize('xml', [
        '<OverlayData/>',
        '<OverlayData><POIs/></OverlayData>',
        '<OverlayData><MarkerCategory name="a"/></OverlayData>',
    ])
    def test_empty_documents(self, pack, xml):
        assert convert_document(parse_marker_xml(xml), directory_reader(pack)) == {}

    def test_each_call_starts_empty(self, pack):
        doc = document('<POI MapID="15" xpos="1" ypos="2" zpos="3" type="a"/>')
        reader = directory_reader(pack)
        assert convert_document(doc, reader) == convert_document(doc, reader)


class TestDirectoryReader:

    def test_reads_relative(self, pack):
        assert directory_reader(pack)('Data/one.trl')[:8] == struct.pack('<ii', 0, 50)

    @pytest.mark.parametrize('path', ['Data/missing.trl', '../outside.trl', '/etc/passwd', 'Data'])
    def test_missing_or_escaping(self, pack, path):
        with pytest.raises(MissingTrailFile):
            directory_reader(pack)(path)

    def test_missing_trail_file_is_file_not_found(self):
        assert issubclass(MissingTrailFile, FileNotFoundError)


class TestConvertFiles:

    def test_convert_marker_file_writes_json(self, pack):
        xml = pack / 'markers.xml'
        xml.write_text(
            '<OverlayData><POIs>'
            '<POI MapID="15" xpos="1" ypos="2" zpos="3" iconFile="i.png"/>'
            '<Trail trailData="Data/one.trl" texture="t.png"/>'
            '</POIs></OverlayData>', encoding='utf-8')

        result = convert_marker_file(xml, pack)
        written = json.loads((pack / 'markers.json').read_text(encoding='utf-8'))
        assert written == result
        assert set(written) == {'15', '50'}

    def test_non_finite_points_written_as_null(self, pack):
        (pack / 'Data' / 'nan.trl').write_bytes(trail_bytes(7, [(float('nan'), 1.0, 2.0)]))
        xml = pack / 'nan.xml'
        xml.write_text('<OverlayData><POIs><Trail trailData="Data/nan.trl" texture="t"/></POIs></OverlayData>')

        convert_marker_file(xml, pack)
        written = json.loads((pack / 'nan.json').read_text(encoding='utf-8'))
        assert written['7']['paths'][0]['points'] == [[None, 1.0, 2.0]]

    @pytest.mark.parametrize('workers', [1, 4])
    def test_convert_pack(self, pack, workers, caplog):
        for i in range(3):
            (pack / f'doc{i}.xml').write_text(
                f'<OverlayData><POIs><POI MapID="{i}" xpos="0" ypos="0" zpos="0" type="x"/></POIs></OverlayData>')
        (pack / 'BROKEN.XML').write_text('<OverlayData><POIs>')
        (pack / 'notes.txt').write_text('ignored')

        with caplog.at_level(logging.ERROR, logger='convert_burrito'):
            results = convert_pack(pack, workers=workers)

        assert set(results) == {'doc0.xml', 'doc1.xml', 'doc2.xml', 'BROKEN.XML'}
        assert 'error' in results['BROKEN.XML']
        assert results['doc1.xml'] == {'maps': 1, 'icons': 1, 'paths': 0}
        assert (pack / 'doc2.json').exists()
        assert [p.name for p in (pack / 'burrito').iterdir()] == [UNKNOWN_POI]
        assert 'BROKEN.XML' in caplog.text
