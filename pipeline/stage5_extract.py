"""Stage 5: Extract — one vision-language call over the whole batch.

All compressed photos and all OCR texts go out in a single request; the model
answers with the complete menu. The result is cached under a key built from the
ordered list of file names, so adding or removing a photo forces a new call even
when every per-photo artifact is still cached.

Reads:  Stage 3 texts, Stage 4 payloads
Writes: data/tmp/menu/all_<file1>_<file2>_....json  (MenuDocument)
"""
import json
import logging

from pydantic import ValidationError

from models.artifacts import CompressedImage, ImageItem, RecognizedText
from models.menu import MenuDocument
from pipeline.cache import batch_key
from pipeline.capabilities import Extractor
from pipeline.exceptions import JsonNotFoundError, MenuSchemaError
from pipeline.runner import StageRunner
from settings import Settings
from utils.openai_utils import find_json_object

logger = logging.getLogger(__name__)

STAGE = "menu"

_PROMPT_TEMPLATE = """\
Twoim jedynym zadaniem jest odczytanie i zwrócenie wszystkich pozycji z menu, \
które otrzymujesz. Pozostałe informacje (ogłoszenia, powiadomienia, reklamy) pomijasz. \
Zwracasz wyłącznie całe menu w żądanym formacie.

Otrzymujesz {image_count} zdjęć MENU oraz tekst wyodrębniony z nich wcześniej przez OCR, \
jako pomoc.

Poprawiaj literówki, np.: "Argentyne" -> "Argentyna".

Jeśli pozycja ma dwa lub więcej wariantów, zduplikuj ją. Przykład: wino kosztuje x za \
150 ml i y za 750 ml — utwórz dwie pozycje o tej samej nazwie: jedną z "150 ml" w opisie \
i ceną x, drugą z "750 ml" w opisie i ceną y. Nigdy nie podawaj kilku cen w jednej pozycji.

Gramatury i pojemności podawaj w opisach.

Tekst z OCR ze wszystkich zdjęć:
---
{ocr_text}
---

Zwróć odpowiedź WYŁĄCZNIE w formacie JSON, bez wyjaśnień, markdownu ani tekstu przed \
lub po JSON-ie. Struktura JSON musi być zgodna z następującym schematem:

{schema}"""


async def run(
    settings: Settings,
    items: list[ImageItem],
    texts: list[RecognizedText],
    images: list[CompressedImage],
    runner: StageRunner,
    extractor: Extractor,
) -> MenuDocument:
    filenames = [item.filename for item in items]

    async def _extract() -> MenuDocument:
        logger.info("  Sending %d photos + %d OCR texts for extraction", len(images), len(texts))
        prompt = build_prompt([t.text for t in texts], filenames)
        schema = MenuDocument.json_schema() if settings.structured_output else None
        response = await extractor.extract(prompt, [i.base64 for i in images], json_schema=schema)
        return parse_menu(response)

    menu = await runner.run_once(STAGE, batch_key(filenames), _extract, MenuDocument)
    logger.info(
        "Stage 5 complete — %d categories, %d dishes",
        len(menu.categories), menu.dish_count,
    )
    return menu


def build_prompt(ocr_texts: list[str], filenames: list[str]) -> str:
    sections = "\n\n".join(
        f"=== ZDJĘCIE {i}: {name} ===\n{text}"
        for i, (name, text) in enumerate(zip(filenames, ocr_texts), start=1)
    )
    return _PROMPT_TEMPLATE.format(
        image_count=len(filenames),
        ocr_text=sections,
        schema=json.dumps(MenuDocument.json_schema(), indent=2, ensure_ascii=False),
    )


def parse_menu(response: str) -> MenuDocument:
    """Turn the model's answer into a MenuDocument.

    A schema-constrained answer is plain JSON. Anything else goes through the
    degraded path, which pulls the outermost brace span out of the text.
    """
    try:
        data = json.loads(response)
    except json.JSONDecodeError:
        logger.warning("Extraction response is not plain JSON; scanning for an embedded object")
        data = find_json_object(response)
        if data is None:
            raise JsonNotFoundError("No JSON object found in the extraction response") from None

    try:
        return MenuDocument.model_validate(data)
    except ValidationError as exc:
        raise MenuSchemaError(
            f"Extraction response does not match the menu schema: {exc}"
        ) from exc
