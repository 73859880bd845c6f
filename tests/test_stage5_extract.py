"""Tests for Stage 5 Extract: prompt, response parsing and batch caching."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from models.artifacts import CompressedImage, ImageItem, RecognizedText
from models.menu import MenuDocument
from pipeline.cache import ContentCache, batch_key
from pipeline.exceptions import ContentFormatError, JsonNotFoundError, MenuSchemaError
from pipeline.runner import StageRunner
from pipeline.stage5_extract import build_prompt, parse_menu, run

_WINE_OCR = "## Wina\nMalbec, Argentyne .... 150 ml 24 zł / 750 ml 110 zł"

_WINE_MENU = {
    "menu": [{
        "kategoria": "Wina",
        "dania": [
            {"nazwa": "Malbec", "opis": "Argentyna, 150 ml", "cena": 24, "waluta": "PLN"},
            {"nazwa": "Malbec", "opis": "Argentyna, 750 ml", "cena": 110, "waluta": "PLN"},
        ],
    }]
}


def _items(*names: str) -> list[ImageItem]:
    return [ImageItem(filename=n, path=f"/in/{n}") for n in names]


def _extractor(response: str) -> MagicMock:
    extractor = MagicMock()
    extractor.extract = AsyncMock(return_value=response)
    return extractor


def _runner(tmp_settings) -> StageRunner:
    return StageRunner(ContentCache(tmp_settings.cache_dir), 4, 5.0)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

class TestBuildPrompt:
    def test_labels_each_ocr_text_with_its_file(self):
        prompt = build_prompt(["Zupy", "Desery"], ["a.jpg", "b.jpg"])
        assert "=== ZDJĘCIE 1: a.jpg ===\nZupy" in prompt
        assert "=== ZDJĘCIE 2: b.jpg ===\nDesery" in prompt
        assert prompt.index("a.jpg") < prompt.index("b.jpg")

    def test_states_image_count(self):
        assert "Otrzymujesz 3 zdjęć MENU" in build_prompt(["", "", ""], ["a", "b", "c"])

    def test_asks_for_one_record_per_variant(self):
        prompt = build_prompt([_WINE_OCR], ["wine.jpg"])
        assert "zduplikuj" in prompt
        assert "Nigdy nie podawaj kilku cen w jednej pozycji" in prompt

    def test_embeds_menu_schema(self):
        prompt = build_prompt(["x"], ["a.jpg"])
        assert '"kategoria"' in prompt
        assert '"waluta"' in prompt


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

class TestParseMenu:
    def test_plain_json(self):
        menu = parse_menu(json.dumps(_WINE_MENU))
        assert menu.dish_count == 2

    def test_variants_are_separate_dishes(self):
        menu = parse_menu(json.dumps(_WINE_MENU))
        dishes = menu.categories[0].dishes
        assert [d.price for d in dishes] == [24, 110]
        assert "150 ml" in dishes[0].description
        assert "750 ml" in dishes[1].description

    def test_json_inside_markdown_fence(self):
        response = "Oto menu:\n```json\n" + json.dumps(_WINE_MENU) + "\n```\nSmacznego!"
        assert parse_menu(response).categories[0].name == "Wina"

    def test_no_json_raises_json_not_found(self):
        with pytest.raises(JsonNotFoundError):
            parse_menu("Przepraszam, nie widzę menu na zdjęciach.")

    def test_unbalanced_braces_raise_json_not_found(self):
        with pytest.raises(JsonNotFoundError):
            parse_menu("{ to nie jest json }")

    def test_missing_fields_raise_schema_error(self):
        bad = {"menu": [{"kategoria": "Wina", "dania": [{"nazwa": "Malbec", "cena": 24}]}]}
        with pytest.raises(MenuSchemaError):
            parse_menu(json.dumps(bad))

    def test_list_valued_price_raises_schema_error(self):
        bad = {"menu": [{"kategoria": "Wina", "dania": [
            {"nazwa": "Malbec", "opis": "150/750 ml", "cena": [24, 110], "waluta": "PLN"},
        ]}]}
        with pytest.raises(MenuSchemaError):
            parse_menu(json.dumps(bad))

    @pytest.mark.parametrize("response", [
        '{"categories": []}',
        '{"categories": [{"name": "Zupy", "dishes": []}]}',
    ])
    def test_unaliased_keys_raise_schema_error(self, response):
        with pytest.raises(MenuSchemaError):
            parse_menu(response)

    def test_nan_price_raises_schema_error(self):
        response = ('{"menu": [{"kategoria": "Wina", "dania": '
                    '[{"nazwa": "Malbec", "opis": "150 ml", "cena": NaN, "waluta": "PLN"}]}]}')
        with pytest.raises(MenuSchemaError):
            parse_menu(response)

    def test_errors_share_a_content_format_base(self):
        with pytest.raises(ContentFormatError):
            parse_menu("no json here")


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------

class TestExtractStage:
    @pytest.mark.asyncio
    async def test_sends_all_images_and_texts_once(self, tmp_settings):
        items = _items("a.jpg", "b.jpg")
        texts = [RecognizedText(text="Zupy"), RecognizedText(text=_WINE_OCR)]
        images = [CompressedImage(base64="AAA"), CompressedImage(base64="BBB")]
        extractor = _extractor(json.dumps(_WINE_MENU))

        menu = await run(tmp_settings, items, texts, images, _runner(tmp_settings), extractor)

        assert menu.dish_count == 2
        extractor.extract.assert_awaited_once()
        prompt, sent_images = extractor.extract.await_args.args
        assert sent_images == ["AAA", "BBB"]
        assert "Zupy" in prompt and "Malbec" in prompt
        assert extractor.extract.await_args.kwargs["json_schema"] == MenuDocument.json_schema()

    @pytest.mark.asyncio
    async def test_structured_output_can_be_disabled(self, tmp_settings):
        settings = tmp_settings.model_copy(update={"structured_output": False})
        extractor = _extractor(json.dumps(_WINE_MENU))

        await run(settings, _items("a.jpg"), [RecognizedText(text="")],
                  [CompressedImage(base64="A")], _runner(settings), extractor)

        assert extractor.extract.await_args.kwargs["json_schema"] is None

    @pytest.mark.asyncio
    async def test_cached_under_batch_key(self, tmp_settings):
        items = _items("a.jpg", "b.jpg")
        extractor = _extractor(json.dumps(_WINE_MENU))
        args = ([RecognizedText(text="x")] * 2, [CompressedImage(base64="A")] * 2)

        await run(tmp_settings, items, *args, _runner(tmp_settings), extractor)
        await run(tmp_settings, items, *args, _runner(tmp_settings), extractor)

        assert extractor.extract.await_count == 1
        cached = ContentCache(tmp_settings.cache_dir).get("menu", batch_key(["a.jpg", "b.jpg"]))
        assert cached["menu"][0]["kategoria"] == "Wina"

    @pytest.mark.asyncio
    async def test_different_batch_recomputes(self, tmp_settings):
        extractor = _extractor(json.dumps(_WINE_MENU))

        await run(tmp_settings, _items("a.jpg", "b.jpg"), [RecognizedText(text="x")] * 2,
                  [CompressedImage(base64="A")] * 2, _runner(tmp_settings), extractor)
        await run(tmp_settings, _items("a.jpg"), [RecognizedText(text="x")],
                  [CompressedImage(base64="A")], _runner(tmp_settings), extractor)

        assert extractor.extract.await_count == 2

    @pytest.mark.asyncio
    async def test_bad_response_not_cached(self, tmp_settings):
        extractor = _extractor("brak danych")

        with pytest.raises(JsonNotFoundError):
            await run(tmp_settings, _items("a.jpg"), [RecognizedText(text="x")],
                      [CompressedImage(base64="A")], _runner(tmp_settings), extractor)

        assert ContentCache(tmp_settings.cache_dir).get("menu", "all_a.jpg") is None
