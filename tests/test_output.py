"""
Tests for the output sinks.
"""
import json

import pytest

from hellowork_scraper.core.output import JsonlDatasetSink, MemorySink


class TestJsonlDatasetSink:

    @pytest.mark.asyncio
    async def test_appends_lines(self, tmp_path):
        path = tmp_path / "out" / "dataset.jsonl"
        sink = JsonlDatasetSink(str(path))

        await sink.push([{'title': 'Développeur', 'url': 'u1'}])
        await sink.push([{'title': 'Comptable', 'url': 'u2'}, {'title': 'Vendeur', 'url': 'u3'}])
        await sink.push([])
        await sink.close()

        lines = path.read_text(encoding='utf-8').splitlines()
        assert [json.loads(line)['url'] for line in lines] == ['u1', 'u2', 'u3']
        assert 'Développeur' in lines[0]
        assert sink.count == 3

    def test_path_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv('HELLOWORK_DATASET_PATH', str(tmp_path / "env.jsonl"))
        assert JsonlDatasetSink().path == tmp_path / "env.jsonl"


class TestMemorySink:

    @pytest.mark.asyncio
    async def test_keeps_batches(self):
        sink = MemorySink()
        await sink.push([{'url': 'a'}])
        await sink.push([{'url': 'b'}, {'url': 'c'}])
        assert len(sink.batches) == 2
        assert [r['url'] for r in sink.records] == ['a', 'b', 'c']
