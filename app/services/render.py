import logging
from pathlib import Path
from typing import Any, Dict, Mapping, NamedTuple, Union

import jinja2
from docx.shared import Emu
from docxtpl import DocxTemplate, InlineImage

from app.core.errors import TemplateError

logger = logging.getLogger("itinerary_server.render")

# Word lays images out at 96 dpi: 914400 EMU per inch / 96
EMU_PER_PIXEL = 9525


class ImageSpec(NamedTuple):
    path: Path
    width: int  # pixels
    height: int  # pixels


def render_document(
    template_path: Union[str, Path],
    context: Mapping[str, Any],
    images: Mapping[str, ImageSpec],
    output_path: Union[str, Path],
) -> Path:
    """
    Merge `context` and `images` into a Word template and write the result.

    Placeholders use Jinja2 syntax (`{{ tourist_name }}`, `{%p for day in
    details %}` ... `{%p endfor %}`). Every key of `images` must be declared
    in the template and point at an existing file; it is embedded at the
    given pixel size.
    """
    template_path = Path(template_path)
    output_path = Path(output_path)

    if not template_path.exists():
        raise TemplateError(f"Template not found at {template_path}")

    for name, spec in images.items():
        if not spec.path or not Path(spec.path).exists():
            raise TemplateError(f"Image not found for '{name}': {spec.path}")

    try:
        doc = DocxTemplate(str(template_path))
        declared = doc.get_undeclared_template_variables()
    except jinja2.TemplateError as e:
        raise TemplateError(f"Invalid template markup: {e}") from e
    except Exception as e:
        logger.exception("Template could not be opened")
        raise TemplateError(f"Template could not be read: {e}") from e

    missing = sorted(name for name in images if name not in declared)
    if missing:
        raise TemplateError(
            f"Template has no placeholder for image(s): {', '.join(missing)}"
        )

    render_context: Dict[str, Any] = dict(context)
    for name, spec in images.items():
        render_context[name] = InlineImage(
            doc,
            str(spec.path),
            width=Emu(spec.width * EMU_PER_PIXEL),
            height=Emu(spec.height * EMU_PER_PIXEL),
        )

    logger.info(f"Rendering {template_path.name} -> {output_path}")
    try:
        doc.render(render_context, autoescape=True)
    except jinja2.TemplateError as e:
        raise TemplateError(f"Invalid template markup: {e}") from e

    output_path.parent.mkdir(parents=True, exist_ok=True)
    doc.save(str(output_path))
    logger.info(f"Document generated at {output_path}")
    return output_path
