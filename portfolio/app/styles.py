"""Photography style catalogue."""

import dataclasses


@dataclasses.dataclass(frozen=True)
class PhotographyStyle:
    """A style a picture can belong to, stored as a ``style`` tag."""

    id: str
    tag_name: str
    label_en: str
    label_zh: str


PHOTOGRAPHY_STYLES: tuple[PhotographyStyle, ...] = (
    PhotographyStyle('landscape', 'Landscape', 'Landscape', '风光'),
    PhotographyStyle('portrait', 'Portrait', 'Portrait', '人像'),
    PhotographyStyle('street', 'Street', 'Street', '街拍'),
    PhotographyStyle('travel', 'Travel', 'Recent', '最近'),
)

STYLES_BY_ID: dict[str, PhotographyStyle] = {s.id: s for s in PHOTOGRAPHY_STYLES}


def style_tag_name(style_id: str | None) -> str | None:
    """Tag name for a known style id, else None."""
    if not style_id:
        return None
    style = STYLES_BY_ID.get(style_id.strip().lower())
    return style.tag_name if style else None
