import asyncio

import docx

from footnote_app.models.annotation_model import Footnote
from footnote_app.services.docx_service import FOOTNOTE_HEADING, TITLE, build_document, generate_docx

FOOTNOTES = [
    Footnote(id="f2", word="개", body="개\nㆍ갯과의 포유류", position=2, offset=10),
    Footnote(id="f1", word="고양이", body="고양이\nㆍ고양잇과의 포유류\nㆍ예시: 고양이가 잔다.", position=1, offset=0),
]

TEXT = "고양이<sup>1)</sup>는 동물이다.\n\n개<sup>2)</sup>도 [[동물]]이다."


def test_build_document_layout():
    doc = build_document(TEXT, FOOTNOTES)
    paragraphs = doc.paragraphs

    assert paragraphs[0].text == TITLE
    assert paragraphs[1].text == "고양이1)는 동물이다."
    assert paragraphs[2].text == "개2)도 동물이다."
    assert paragraphs[3].text == FOOTNOTE_HEADING
    assert paragraphs[4].text.startswith("1) 고양이")
    assert paragraphs[5].text.startswith("2) 개")


def test_reference_runs_are_superscript():
    doc = build_document(TEXT, FOOTNOTES)
    runs = doc.paragraphs[1].runs

    assert [r.text for r in runs] == ["고양이", "1)", "는 동물이다."]
    assert runs[1].font.superscript is True
    assert not runs[0].font.superscript


def test_footnote_label_is_bold():
    doc = build_document(TEXT, FOOTNOTES)
    label = doc.paragraphs[4].runs[0]
    assert label.text == "1) "
    assert label.bold is True


def test_no_footnote_section_without_footnotes():
    doc = build_document("본문만 있다.", [])
    assert [p.text for p in doc.paragraphs] == [TITLE, "본문만 있다."]


def test_generate_docx_writes_file(tmp_path):
    path = asyncio.run(generate_docx(TEXT, FOOTNOTES, output_dir=tmp_path / "out"))

    assert path.exists()
    assert path.name.startswith("footnote_document_")
    reopened = docx.Document(str(path))
    assert reopened.paragraphs[0].text == TITLE
