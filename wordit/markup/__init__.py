"""Markup processing: sanitize, resolve cards, parse into a content tree."""

from wordit.markup.cards import CardKind, decode_card_value, infer_card_kind, resolve_cards
from wordit.markup.parser import MarkupParser, parse
from wordit.markup.sanitizer import sanitize
from wordit.markup.styles import StyleDescriptor, StyleResolver, resolve_style
from wordit.markup.tree import ContentTree

__all__ = [
    "sanitize",
    "resolve_cards",
    "decode_card_value",
    "infer_card_kind",
    "CardKind",
    "parse",
    "MarkupParser",
    "StyleDescriptor",
    "StyleResolver",
    "resolve_style",
    "ContentTree",
]
