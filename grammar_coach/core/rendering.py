"""Markdown rendering for email and the read-only result pages."""

import html
import re
from typing import Iterable, Optional
from urllib.parse import urlsplit
from xml.etree.ElementTree import Element

import markdown
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from grammar_coach.core.results import HistoryEntry, StoredResult

_MD_EXTENSIONS = ["extra", "sane_lists", "nl2br"]
_SAFE_URL_SCHEMES = ("", "http", "https", "mailto")
_URL_ATTRIBUTES = ("href", "src")

_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_END_RE = re.compile(r"</(p|h[1-6]|li|ul|ol|div|blockquote|pre|tr)>|<br\s*/?>|<hr\s*/?>", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")

_STYLE = """
  body { font-family: 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; background-color: #f3f4f6; margin: 0; padding: 20px; }
  .container { max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 12px; overflow: hidden; box-shadow: 0 4px 6px rgba(0,0,0,0.1); }
  .header { background-color: #d97706; color: white; padding: 20px; text-align: center; }
  .header h1 { margin: 0; font-size: 24px; color: white; border: 0; }
  .content { padding: 30px; }
  h1, h2, h3 { color: #d97706; border-bottom: 2px solid #fcd34d; padding-bottom: 8px; margin-top: 24px; }
  p { margin-bottom: 16px; }
  strong { color: #b45309; background-color: #fef3c7; padding: 0 4px; border-radius: 4px; }
  ul, ol { padding-left: 20px; margin-bottom: 16px; }
  li { margin-bottom: 8px; }
  hr { border: 0; height: 1px; background: #e5e7eb; margin: 30px 0; }
  .score { font-size: 48px; font-weight: bold; color: #b45309; text-align: center; }
  .explanation { white-space: pre-wrap; background: #f8fafc; border: 1px solid #e2e8f0; padding: 16px; border-radius: 6px; }
  .footer { background-color: #f9fafb; padding: 20px; text-align: center; font-size: 12px; color: #6b7280; border-top: 1px solid #e5e7eb; }
"""

FOOTER = "English Grammar Coach AI<br>Powered by Gemini"


def _is_safe_url(url: str) -> bool:
    return urlsplit(url.strip()).scheme.lower() in _SAFE_URL_SCHEMES


class _SafeLinks(Treeprocessor):
    """Removes link and image targets with a scheme such as javascript:."""

    def run(self, root: Element) -> None:
        for element in root.iter():
            for attribute in _URL_ATTRIBUTES:
                value = element.get(attribute)
                if value is not None and not _is_safe_url(value):
                    del element.attrib[attribute]


class _SafeLinksExtension(Extension):
    def extendMarkdown(self, md: markdown.Markdown) -> None:
        # After inline patterns have built the links
        md.treeprocessors.register(_SafeLinks(md), "safe_links", 5)


def _markdown() -> markdown.Markdown:
    # Markdown instances are stateful: one per conversion
    md = markdown.Markdown(extensions=_MD_EXTENSIONS + [_SafeLinksExtension()])
    md.preprocessors.deregister("html_block")
    md.inlinePatterns.deregister("html")
    return md


def render_markdown(text: str) -> str:
    """Converts graded markdown to an HTML fragment. Raw HTML in the input is escaped, not rendered."""
    return _markdown().convert(text or "")


def render_plaintext(text: str) -> str:
    """Converts graded markdown to readable plain text for the email fallback body."""
    fragment = _BLOCK_END_RE.sub("\n", render_markdown(text))
    plain = html.unescape(_TAG_RE.sub("", fragment))
    lines = [line.rstrip() for line in plain.splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="ja">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{html.escape(title)}</title>
<style>{_STYLE}</style>
</head>
<body>
<div class="container">
<div class="header"><h1>{html.escape(title)}</h1></div>
<div class="content">
{body}
</div>
<div class="footer"><p>{FOOTER}</p></div>
</div>
</body>
</html>
"""


def render_feedback_email(name: str, graded_text: str, detail_url: Optional[str] = None) -> str:
    """Wraps graded markdown in the styled feedback email template."""
    link = ""
    if detail_url:
        link = f'<p><a href="{html.escape(detail_url, quote=True)}">Webで結果を見る</a></p>'
    body = (
        f"<p><strong>{html.escape(name)}</strong> さんへ</p>\n"
        "<p>提出ありがとうございます。AIプロ講師による添削結果をお届けします。</p>\n"
        f"{link}<hr>\n{render_markdown(graded_text)}"
    )
    return _page("📝 英語添削レポート", body)


def render_feedback_email_text(name: str, graded_text: str, detail_url: Optional[str] = None) -> str:
    parts = [f"{name} さんへ", "", "提出ありがとうございます。AIプロ講師による添削結果をお届けします。", ""]
    if detail_url:
        parts += [f"Webで結果を見る: {detail_url}", ""]
    parts.append(render_plaintext(graded_text))
    return "\n".join(parts)


def render_result_page(result: StoredResult) -> str:
    """Renders one stored record as the shareable detail page."""
    score = ""
    if result.score is not None:
        score = f'<div class="score">{result.score}<span style="font-size:18px"> 点</span></div>\n'
    body = (
        f"<p>{html.escape(result.name)} 様の結果 / 提出日: {html.escape(result.date)}</p>\n"
        f"{score}"
        f"<p>学年: {html.escape(result.grade)} / 志望校: {html.escape(result.target)}</p>\n"
        "<h2>あなたの説明</h2>\n"
        f'<div class="explanation">{html.escape(result.explanation)}</div>\n'
        "<h2>AI講師からのアドバイス</h2>\n"
        f"{render_markdown(result.advice)}"
    )
    return _page("採点結果", body)


def render_history_page(entries: Iterable[HistoryEntry]) -> str:
    """Renders a user's history, newest first, as one page."""
    blocks = []
    for entry in entries:
        blocks.append(
            f"<h2>{html.escape(entry.date)}</h2>\n"
            f'<div class="explanation">{html.escape(entry.explanation)}</div>\n'
            f"{render_markdown(entry.advice)}\n<hr>"
        )
    if not blocks:
        blocks.append("<p>まだ提出履歴がありません。</p>")
    return _page("提出履歴", "\n".join(blocks))
