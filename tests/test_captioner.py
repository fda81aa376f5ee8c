"""
Tests for the vision captioner.
"""

from unittest.mock import MagicMock

import pytest

from pipeline.captioner import CAPTION_PROMPT, Captioner, clean_caption


def openai_client(content=None, error=None):
    client = MagicMock()
    if error is not None:
        client.chat.completions.create.side_effect = error
    else:
        message = MagicMock()
        message.content = content
        client.chat.completions.create.return_value.choices = [MagicMock(message=message)]
    return client


@pytest.mark.parametrize("raw, expected", [
    ('"Golden hour on the beach."', "Golden hour on the beach"),
    ("  Kids playing in autumn leaves \n", "Kids playing in autumn leaves"),
    ("Waiting...", "Waiting..."),
    ('""', None),
    (None, None),
])
def test_clean_caption(raw, expected):
    assert clean_caption(raw) == expected


def test_disabled_without_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    captioner = Captioner()

    assert not captioner.enabled
    assert captioner.caption(b"jpeg bytes", "image/jpeg") is None


def test_caption_is_cleaned(camera_jpeg):
    client = openai_client('"Golden light on rooftops."')
    captioner = Captioner(client=client, model="gpt-4o-mini")

    assert captioner.caption(camera_jpeg, "image/jpeg") == "Golden light on rooftops"

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    content = kwargs["messages"][0]["content"]
    assert content[0]["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert content[1]["text"] == CAPTION_PROMPT


def test_declared_mime_type_is_forwarded():
    client = openai_client("Screenshot of a chart")

    Captioner(client=client).caption(b"png bytes", "image/png")

    content = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
    assert content[0]["image_url"]["url"].startswith("data:image/png;base64,")


def test_api_failure_gives_none():
    client = openai_client(error=RuntimeError("rate limited"))

    assert Captioner(client=client).caption(b"jpeg bytes", "image/jpeg") is None
