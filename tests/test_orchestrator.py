import asyncio
import copy
import json

from conftest import FakeProvider, MemoryStorage
from mockpix.orchestrator import PostProcessingOrchestrator, build_storage
from mockpix.providers import PlaceholderImageProvider
from mockpix.storage import LocalStorage
from mockpix.urls import is_placeholder_url


def strings_in(node):
    if isinstance(node, dict):
        for value in node.values():
            yield from strings_in(value)
    elif isinstance(node, list):
        for value in node:
            yield from strings_in(value)
    elif isinstance(node, str):
        yield node


def run(orchestrator, data):
    return asyncio.run(orchestrator.process_data(data))


def test_full_run_replaces_every_placeholder(config, provider, storage, store_catalog):
    original = copy.deepcopy(store_catalog)
    result = run(PostProcessingOrchestrator(config, provider, storage), store_catalog)

    assert result.success
    assert result.errors == []
    assert result.original_image_count == 5
    assert result.processed_image_count == 5
    assert result.replacement.failed_count == 0
    assert not any(is_placeholder_url(s) for s in strings_in(result.processed_data))
    assert store_catalog == original
    assert result.generated_image_count == len(result.optimization.groups) == len(provider.calls)
    assert [p.phase for p in result.phases] == [
        "Image URL Extraction",
        "Description Generation",
        "Processing Optimization",
        "Image Generation",
        "URL Replacement",
    ]
    assert result.processed_data["meta"] == {"title": "Negozi", "cover": None}


def test_second_run_finds_nothing(config, provider, storage, store_catalog):
    orchestrator = PostProcessingOrchestrator(config, provider, storage)
    first = run(orchestrator, store_catalog)
    second = run(orchestrator, first.processed_data)

    assert second.success
    assert second.original_image_count == 0
    assert second.processed_data == first.processed_data


def test_disabled_replacement_echoes_input(config, provider, storage, store_catalog):
    config.enable_image_replacement = False
    result = run(PostProcessingOrchestrator(config, provider, storage), store_catalog)

    assert result.success
    assert result.processed_data == store_catalog
    assert result.original_image_count == 0
    assert provider.calls == []


def test_document_without_placeholders(config, provider, storage):
    data = {"items": [{"name": "x", "image": "https://example.com/a.png"}]}
    result = run(PostProcessingOrchestrator(config, provider, storage), data)

    assert result.success
    assert result.processed_data == data
    assert result.original_image_count == 0


def test_failed_group_becomes_warning(config, storage):
    data = {"items": [
        {"name": "Trattoria Roma", "category": "food", "image": "https://picsum.photos/800/600"},
        {"name": "Atelier Firenze", "category": "fashion", "logo": "https://picsum.photos/300/300"},
        {"name": "Hotel Venezia", "category": "travel", "hero": "https://picsum.photos/1600/900"},
    ]}
    provider = FakeProvider(fail_sizes={(300, 300)})
    result = run(PostProcessingOrchestrator(config, provider, storage), data)

    assert result.success
    assert result.errors == []
    assert any("items[1].logo" in w for w in result.warnings)
    assert result.generated_image_count == 2
    items = result.processed_data["items"]
    assert items[1]["logo"] == "https://picsum.photos/300/300"
    assert items[0]["image"].startswith("https://bucket.test/")
    assert items[2]["hero"].startswith("https://bucket.test/")


def test_cyclic_document_is_processed(config, provider, storage):
    data = {"img": "https://picsum.photos/800/600", "child": {}}
    data["child"]["parent"] = data

    result = run(PostProcessingOrchestrator(config, provider, storage), data)

    assert result.success
    assert result.errors == []
    processed = result.processed_data
    assert processed["img"].startswith("https://bucket.test/")
    assert processed["child"]["parent"] is processed


def test_failed_replacement_is_reported_as_error(config, storage):
    config.replacement.preserve_original_on_failure = True
    data = {"items": [
        {"name": "Trattoria Roma", "category": "food", "image": "https://picsum.photos/800/600"},
        {"name": "Atelier Firenze", "category": "fashion", "logo": "https://picsum.photos/300/300"},
    ]}
    provider = FakeProvider(fail_sizes={(800, 600), (300, 300)})

    result = run(PostProcessingOrchestrator(config, provider, storage), data)

    assert not result.success
    assert result.replacement.failed_count == 2
    assert len(result.errors) == 1
    assert "0 replaced, 2 failed" in result.errors[0]
    assert "No replacement found" in result.errors[0]


def test_failing_stage_returns_original(config, provider, storage, store_catalog):
    class BrokenDescriber:
        def describe_all(self, occurrences):
            raise RuntimeError("describer exploded")

    orchestrator = PostProcessingOrchestrator(config, provider, storage, describer=BrokenDescriber())
    result = run(orchestrator, store_catalog)

    assert not result.success
    assert result.processed_data is store_catalog
    assert "describer exploded" in result.errors[0]
    assert result.phases[-1].phase == "Description Generation"
    assert result.phases[-1].errors == 1


def test_optimization_disabled_generates_each_image(config, provider, storage):
    data = {"items": [{
        "name": "Scarpa",
        "thumb": "https://picsum.photos/200/200",
        "banner": "https://picsum.photos/200/200",
    }]}
    config.enable_optimization = False
    result = run(PostProcessingOrchestrator(config, provider, storage), data)

    assert result.success
    assert len(provider.calls) == 2
    assert result.optimization_savings == 0.0


def test_cdn_urls_are_preferred(config, provider):
    result = run(
        PostProcessingOrchestrator(config, provider, MemoryStorage(cdn=True)),
        {"img": "https://picsum.photos/800/600"},
    )
    assert result.processed_data["img"].startswith("https://cdn.test/generated-images/")


def test_intermediate_results_are_saved(config, provider, storage, store_catalog):
    config.save_intermediate_results = True
    run(PostProcessingOrchestrator(config, provider, storage), store_catalog)

    saved = sorted(p.name for p in config.intermediate_dir.iterdir())
    assert saved == [
        "01_extraction.json",
        "02_descriptions.json",
        "03_optimization.json",
        "04_generation.json",
        "05_replacement.json",
    ]
    extraction = json.loads((config.intermediate_dir / "01_extraction.json").read_text())
    assert extraction["totalFound"] == 5


def test_process_file_writes_output_and_report(tmp_path, config, provider, storage, store_catalog):
    source = tmp_path / "mock.json"
    source.write_text(json.dumps(store_catalog), encoding="utf-8")
    output = tmp_path / "out" / "mock.final.json"
    report = tmp_path / "out" / "report.json"

    result = asyncio.run(
        PostProcessingOrchestrator(config, provider, storage).process_file(source, output, report)
    )

    assert result.success
    written = json.loads(output.read_text(encoding="utf-8"))
    assert written == result.processed_data
    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["success"] is True
    assert payload["originalImageCount"] == 5
    assert len(payload["phases"]) == 5


def test_process_file_with_invalid_json(tmp_path, config, provider, storage):
    source = tmp_path / "broken.json"
    source.write_text("{not json", encoding="utf-8")
    output = tmp_path / "out.json"

    result = asyncio.run(PostProcessingOrchestrator(config, provider, storage).process_file(source, output))

    assert not result.success
    assert result.processed_data == "{not json"
    assert "Cannot parse" in result.errors[0]
    assert not output.exists()


def test_local_placeholder_images_end_to_end(config, tmp_path):
    orchestrator = PostProcessingOrchestrator(config, PlaceholderImageProvider())
    result = run(orchestrator, {"img": "https://picsum.photos/seed/milano/64/48"})

    assert result.success
    url = result.processed_data["img"]
    assert url.startswith("file://")
    stored = list(config.storage.root_dir.rglob("*.png"))
    assert len(stored) == 1
    assert stored[0].read_bytes().startswith(b"\x89PNG")


def test_build_storage_ignores_public_urls_without_upload(config):
    config.storage.public_base_url = "https://bucket.test"
    config.upload_to_cloud = False
    storage = build_storage(config)
    assert isinstance(storage, LocalStorage)
    assert storage.public_base_url is None

    config.upload_to_cloud = True
    assert build_storage(config).public_base_url == "https://bucket.test"
