# src/auditor/rules/packs/perceivable.py
import re
from typing import List

from auditor.dom.models import DocumentModel
from auditor.managers.config_manager import config_manager
from auditor.model import Category, Severity, Violation
from auditor.rules.base import Rule, is_live_region, is_true, parse_float

PRIORITY = 10

IMAGE_FILENAME = re.compile(r"^[\w\-. ]+\.(jpe?g|png|gif|svg|webp|bmp|tiff?|avif)$", re.IGNORECASE)
PLACEHOLDER_ALT = {
    "image", "img", "photo", "picture", "pic", "graphic", "placeholder",
    "untitled", "spacer", "banner", "icon", "alt", "alt text", "default",
}


def _hidden(element) -> bool:
    return element.get("aria-hidden", "").lower() == "true" or element.get("role", "").lower() in ("presentation", "none")


class ImageAltRule(Rule):
    id = "image-alt"
    category = Category.PERCEIVABLE
    criterion = "1.1.1 Non-text Content"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el in doc.iter_elements():
            is_image_button = el.tag == "input" and el.get("type", "").lower() == "image"
            if el.tag != "img" and not is_image_button:
                continue
            if _hidden(el):
                continue

            alt = el.get("alt")
            if alt is None:
                if el.get("aria-label", "").strip() or el.get("aria-labelledby", "").strip():
                    continue
                res.append(self.violation(
                    el,
                    "Missing alt attribute on image",
                    'Add alt="" for decorative images or descriptive alt text for meaningful images'
                ))
                continue

            text = alt.strip()
            # alt="" marks a decorative image
            if not text:
                if is_image_button:
                    res.append(self.violation(
                        el,
                        "Image button has empty alt text",
                        "Describe the action the image button performs in its alt text"
                    ))
                continue

            src_name = el.get("src", "").rsplit("/", 1)[-1].lower()
            if IMAGE_FILENAME.match(text) or text.lower() in PLACEHOLDER_ALT or text.lower() == src_name:
                res.append(self.violation(
                    el,
                    f'Alt text is a filename or placeholder ("{text}") instead of a description',
                    f'Replace "{text}" with a meaningful description of the image content'
                ))
        return res


class MediaCaptionsRule(Rule):
    id = "media-captions"
    category = Category.PERCEIVABLE
    criterion = "1.2.2 Captions (Prerecorded)"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for video in doc.find_all("video"):
            if _hidden(video):
                continue
            has_captions = any(
                child.tag == "track" and child.get("kind", "subtitles").lower() in ("captions", "subtitles")
                for child in video.children
            )
            if not has_captions:
                res.append(self.violation(
                    video,
                    "Video missing captions",
                    'Add a <track kind="captions"> WebVTT file with an accurate transcription'
                ))
        return res


class AudioTranscriptRule(Rule):
    id = "audio-transcript"
    category = Category.PERCEIVABLE
    criterion = "1.2.1 Audio-only and Video-only (Prerecorded)"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        audio_elements = [el for el in doc.find_all("audio") if not _hidden(el)]
        if not audio_elements:
            return []

        # A page-level transcript link or section covers its audio content
        page_has_transcript = any(
            el.tag in ("a", "section", "details")
            and "transcript" in f"{el.text} {el.get('id', '')}".lower()
            for el in doc.iter_elements()
        )

        res = []
        for audio in audio_elements:
            if audio.get("aria-describedby") or page_has_transcript:
                continue
            res.append(self.violation(
                audio,
                "Audio content lacks transcript",
                "Provide a text transcript and reference it with aria-describedby or an adjacent link"
            ))
        return res


class ColorContrastRule(Rule):
    """
    Checks pre-computed contrast ratios attached to elements.

    The document builder does not render pages; callers attach the measured ratio as
    `data-contrast-ratio` (and `data-large-text="true"` for large-scale text).
    """
    id = "color-contrast"
    category = Category.PERCEIVABLE
    criterion = "1.4.3 Contrast (Minimum)"
    default_severity = Severity.HIGH

    def __init__(self, normal_minimum: float = 4.5, large_minimum: float = 3.0):
        self.normal_minimum = normal_minimum
        self.large_minimum = large_minimum

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el in doc.iter_elements():
            ratio = parse_float(el.get("data-contrast-ratio"))
            if ratio is None:
                continue
            large = is_true(el.get("data-large-text"))
            minimum = self.large_minimum if large else self.normal_minimum
            if ratio >= minimum:
                continue

            severity = Severity.HIGH if ratio < self.large_minimum else Severity.MEDIUM
            res.append(self.violation(
                el,
                f"Text contrast ratio {ratio:g}:1 (minimum {minimum:g}:1 required)",
                f"Adjust text or background colour to reach at least {minimum:g}:1",
                severity=severity
            ))
        return res


class UseOfColorRule(Rule):
    id = "use-of-color"
    category = Category.PERCEIVABLE
    criterion = "1.4.1 Use of Color"
    default_severity = Severity.HIGH

    STATE_CLASS = re.compile(r"(^|[-_])(error|danger|invalid|red)($|[-_])")
    CUE_WORDS = re.compile(r"\b(error|invalid|required|warning|incorrect|failed|must|not valid)\b", re.IGNORECASE)

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el in doc.iter_elements():
            if el.tag in ("input", "select", "textarea", "form", "body", "html"):
                continue
            if not any(self.STATE_CLASS.search(c.lower()) for c in el.classes):
                continue
            if not el.text:
                continue

            has_icon = any(
                d.tag in ("img", "svg") or any("icon" in c.lower() for c in d.classes)
                for d in el.descendants()
            )
            if is_live_region(el) or has_icon or self.CUE_WORDS.search(el.text):
                continue

            res.append(self.violation(
                el,
                "Error state indicated by color only",
                "Add an icon or explicit text (e.g. \"Error:\") in addition to color"
            ))
        return res


class HeadingOrderRule(Rule):
    id = "heading-order"
    category = Category.PERCEIVABLE
    criterion = "1.3.1 Info and Relationships"
    default_severity = Severity.MEDIUM

    @staticmethod
    def _level(el):
        if re.fullmatch(r"h[1-6]", el.tag):
            return int(el.tag[1])
        if el.get("role", "").lower() == "heading":
            try:
                return int(el.get("aria-level", "2"))
            except ValueError:
                return 2
        return None

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        previous = 0
        for el in doc.iter_elements():
            level = self._level(el)
            if level is None:
                continue
            if previous and level > previous + 1:
                res.append(self.violation(
                    el,
                    f"Heading structure skips from h{previous} to h{level}",
                    f"Use h{previous + 1} before h{level} to maintain proper heading hierarchy"
                ))
            previous = level
        return res


class TableHeadersRule(Rule):
    id = "table-headers"
    category = Category.PERCEIVABLE
    criterion = "1.3.1 Info and Relationships"
    default_severity = Severity.HIGH

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for table in doc.find_all("table"):
            if table.get("role", "").lower() in ("presentation", "none"):
                continue
            cells = list(table.descendants())
            rows = [c for c in cells if c.tag == "tr"]
            if len(rows) < 2:
                continue
            has_headers = any(
                c.tag == "th" or c.get("role", "").lower() in ("columnheader", "rowheader")
                for c in cells
            )
            if not has_headers:
                res.append(self.violation(
                    table,
                    "Data table missing <th> header cells",
                    "Use <th> elements with a scope attribute for row and column headers"
                ))
        return res


class SemanticStructureRule(Rule):
    id = "semantic-structure"
    category = Category.PERCEIVABLE
    criterion = "1.3.1 Info and Relationships"
    default_severity = Severity.LOW

    # class/id token -> (semantic element, landmark role)
    SEMANTIC_HINTS = {
        "header": ("header", "banner"),
        "site-header": ("header", "banner"),
        "footer": ("footer", "contentinfo"),
        "site-footer": ("footer", "contentinfo"),
        "nav": ("nav", "navigation"),
        "navbar": ("nav", "navigation"),
        "navigation": ("nav", "navigation"),
        "sidebar": ("aside", "complementary"),
        "main": ("main", "main"),
        "main-content": ("main", "main"),
        "article": ("article", "article"),
    }

    def evaluate(self, doc: DocumentModel) -> List[Violation]:
        res = []
        for el in doc.iter_elements():
            if el.tag not in ("div", "span") or el.has("role"):
                continue
            tokens = [c.lower() for c in el.classes] + [el.get("id", "").lower()]
            hint = next((self.SEMANTIC_HINTS[t] for t in tokens if t in self.SEMANTIC_HINTS), None)
            if hint is None:
                continue
            semantic, role = hint
            res.append(self.violation(
                el,
                f"Content lacks proper semantic structure (<{el.tag}> used as {semantic})",
                f'Use a <{semantic}> element or add role="{role}"'
            ))
        return res


RULES = [
    ImageAltRule(),
    MediaCaptionsRule(),
    AudioTranscriptRule(),
    ColorContrastRule(
        normal_minimum=float(config_manager.get_nested("rules.contrast.normal", 4.5)),
        large_minimum=float(config_manager.get_nested("rules.contrast.large", 3.0)),
    ),
    UseOfColorRule(),
    HeadingOrderRule(),
    TableHeadersRule(),
    SemanticStructureRule(),
]
