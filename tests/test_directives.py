"""Tests for reply cleanup and the directive pipeline."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from wachat.errors import DownloadError
from wachat.handlers import directives
from wachat.handlers.directives import (
    FALLBACK_TEXT,
    OWNER_OFFLINE_TEXT,
    DirectiveProcessor,
    clean_reply,
    normalize_phone,
    parse_image_count,
    strip_token,
)
from wachat.services.leads import LeadStore
from wachat.services.profiles import ProfileStore

SENDER = "user@s.whatsapp.net"


class FakeHandler:
    """Records every delivery the pipeline asks for."""

    def __init__(self, settings):
        self.settings = settings
        self.ai = MagicMock()
        self.ai.reply = AsyncMock(return_value="Summary for you")
        self.leads = LeadStore(settings.data_path / "leads.json")
        self.profiles = ProfileStore(settings.data_path / "profiles")
        self.send_text = AsyncMock(return_value=True)
        self.send_image = AsyncMock(return_value=True)
        self.send_audio = AsyncMock(return_value=True)
        self.send_video = AsyncMock(return_value=True)
        self.react = AsyncMock(return_value=True)


@pytest.fixture
def handler(settings):
    return FakeHandler(settings)


@pytest.fixture
def processor(handler):
    return DirectiveProcessor(handler)


@pytest.fixture
def msg(user_msg):
    return user_msg("hello")


def _sent_texts(handler):
    return [c.args[1] for c in handler.send_text.call_args_list]


class TestCleanReply:
    def test_removes_echoed_prompt(self):
        assert clean_reply("tell me a joke please: here it is", "tell me a joke please") == "here it is"

    def test_short_prompt_not_stripped(self):
        assert clean_reply("hi hi there", "hi") == "hi hi there"

    def test_identity_shield(self):
        reply = clean_reply("Honestly I am an AI language thing", "are you real?", "Mazhar")
        assert reply.startswith("Yaar main Mazhar hi hoon, real chat ho rahi hai.")

    def test_identity_shield_only_when_reply_admits_it(self):
        assert clean_reply("Of course yaar!", "are you real?") == "Of course yaar!"

    def test_artifacts_removed(self):
        assert clean_reply("Thinking... As an AI model I agree", "what now?") == "Yaar I agree"
        assert clean_reply("Mazhar here, all good", "sup?") == ", all good"


class TestHelpers:
    def test_normalize_phone(self):
        assert normalize_phone("0300-1234567") == "923001234567"
        assert normalize_phone("+92 300 1234567") == "923001234567"
        assert normalize_phone("14155550100") == "14155550100"

    def test_parse_image_count(self):
        assert parse_image_count("3") == 3
        assert parse_image_count(None) == 1
        assert parse_image_count("count") == 1

    def test_strip_token_removes_every_occurrence(self):
        text = "[REACTION: 😂] hi [REACTION: 🔥]"
        assert strip_token(text, directives.REACTION_RE) == "hi"


class TestPipeline:
    @pytest.mark.asyncio
    async def test_plain_text_is_sent(self, processor, handler, msg):
        await processor.process("Hello Ali!", "hello", msg, {})
        handler.send_text.assert_awaited_once_with(SENDER, "Hello Ali!", quoted=msg)

    @pytest.mark.asyncio
    async def test_empty_after_stripping_sends_nothing(self, processor, handler, msg):
        await processor.process("[REACTION: 👍]", "hello", msg, {})
        handler.react.assert_awaited_once_with(msg, "👍")
        handler.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_memory_reset_continues(self, processor, handler, msg):
        await processor.process("[GLOBAL_MEMORY_RESET] Fresh start!", "forget everything", msg, {})
        handler.ai.reset.assert_called_once_with(SENDER)
        assert _sent_texts(handler) == ["Fresh start!"]

    @pytest.mark.asyncio
    async def test_fallback_is_exclusive(self, processor, handler, msg):
        await processor.process("[FALLBACK] [REACTION: 😂] whatever", "asdfgh", msg, {})
        assert _sent_texts(handler) == [FALLBACK_TEXT]
        handler.react.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owner_offline_when_asked_for_owner(self, processor, handler, msg):
        await processor.process("[TRIGGER_NOTIFY_OWNER_OFFLINE] one sec", "where is the owner", msg, {})
        assert _sent_texts(handler) == [OWNER_OFFLINE_TEXT]

    @pytest.mark.asyncio
    async def test_owner_offline_otherwise_just_stripped(self, processor, handler, msg):
        await processor.process("Hey there [TRIGGER_NOTIFY_OWNER_OFFLINE]", "hello friend", msg, {})
        assert _sent_texts(handler) == ["Hey there"]

    @pytest.mark.asyncio
    async def test_forward_then_continue(self, processor, handler, msg):
        await processor.process("Done! [FORWARD: 0300-1234567 | Call Ali back]", "tell him", msg, {})
        handler.send_text.assert_any_await("923001234567@s.whatsapp.net", "Call Ali back")
        assert _sent_texts(handler)[-1] == "Done!"

    @pytest.mark.asyncio
    async def test_new_lead_updates_profile(self, processor, handler, msg):
        profile = handler.profiles.get_profile(SENDER, "Ali")
        await processor.process("Great idea! [NEW_LEAD: Ali, E-commerce site]", "i want a shop", msg, profile)

        assert handler.leads.all_leads()[0]["project"] == "E-commerce site"
        assert profile["relationship"] == "Lead"
        assert profile["notes"] == "Interested in: E-commerce site"
        assert handler.profiles.get_profile(SENDER)["relationship"] == "Lead"
        assert _sent_texts(handler) == ["Great idea!"]

    @pytest.mark.asyncio
    async def test_web_search_appends_links(self, processor, handler, msg):
        with patch("wachat.handlers.directives.search") as mock_search:
            mock_search.deep_search = AsyncMock(return_value=[{"title": "Python", "url": "https://python.org"}])
            await processor.process("Here you go [WEB_SEARCH: python]", "search python", msg, {})

        mock_search.deep_search.assert_awaited_once_with("python", "web")
        text = _sent_texts(handler)[0]
        assert text.startswith("Here you go")
        assert "🔗 https://python.org" in text
        assert "[WEB_SEARCH" not in text

    @pytest.mark.asyncio
    async def test_song_download_failure_adds_note(self, processor, handler, msg):
        with patch("wachat.handlers.directives.downloads") as mock_dl:
            mock_dl.fetch_audio = AsyncMock(side_effect=DownloadError("all failed"))
            await processor.process("Playing! [SONG_SEARCH: tum hi ho]", "play tum hi ho", msg, {})

        handler.send_audio.assert_not_awaited()
        assert 'audio download for "tum hi ho" failed' in _sent_texts(handler)[0]

    @pytest.mark.asyncio
    async def test_video_download_success(self, processor, handler, msg):
        with patch("wachat.handlers.directives.downloads") as mock_dl:
            mock_dl.fetch_video = AsyncMock(return_value=b"mp4data")
            await processor.process("[VIDEO_DOWNLOAD: lofi beats]", "send lofi video", msg, {})

        handler.send_video.assert_awaited_once_with(SENDER, b"mp4data", quoted=msg)
        assert _sent_texts(handler) == ["🎬 _Sent video for: lofi beats_"]

    @pytest.mark.asyncio
    async def test_gif_is_exclusive_and_captioned(self, processor, handler, msg):
        with patch("wachat.handlers.directives.gif") as mock_gif, \
             patch("wachat.handlers.directives.downloads") as mock_dl:
            mock_gif.get_gif = AsyncMock(return_value="https://example.com/dance.gif")
            mock_dl.fetch_bytes = AsyncMock(return_value=b"GIF89a")
            await processor.process("Let's go! [GIF: dance]", "party time", msg, {})

        handler.send_image.assert_awaited_once_with(
            SENDER, b"GIF89a", caption="Let's go!", mime_type="image/gif", quoted=msg,
        )
        handler.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_image_search_skips_broken_links(self, processor, handler, msg):
        with patch("wachat.handlers.directives.search") as mock_search, \
             patch("wachat.handlers.directives.downloads") as mock_dl:
            mock_search.search_web_images = AsyncMock(return_value=["u1", "u2", "u3", "u4", "u5"])
            mock_dl.fetch_bytes = AsyncMock(side_effect=[None, b"img2", b"img3"])
            await processor.process("Cats! [IMG_SEARCH: cats, 2]", "show cats", msg, {})

        mock_search.search_web_images.assert_awaited_once_with("cats", 5)
        assert handler.send_image.await_count == 2
        assert _sent_texts(handler) == ["Cats!"]

    @pytest.mark.asyncio
    async def test_image_search_all_broken(self, processor, handler, msg):
        with patch("wachat.handlers.directives.search") as mock_search, \
             patch("wachat.handlers.directives.downloads") as mock_dl:
            mock_search.search_web_images = AsyncMock(return_value=["u1", "u2"])
            mock_dl.fetch_bytes = AsyncMock(return_value=None)
            await processor.process("[IMG_SEARCH: cats]", "show cats", msg, {})

        handler.send_image.assert_not_awaited()
        assert "all links were broken" in _sent_texts(handler)[0]

    @pytest.mark.asyncio
    async def test_deep_research(self, processor, handler, msg):
        research = {
            "query": "quantum",
            "web": [{"title": "Quantum", "url": "https://q.example"}],
            "video": [{"title": "Vid", "url": "https://youtube.com/watch?v=1"}],
            "images": ["https://img.example/a.jpg"],
        }
        with patch("wachat.handlers.directives.search") as mock_search, \
             patch("wachat.handlers.directives.downloads") as mock_dl:
            mock_search.perform_research = AsyncMock(return_value=research)
            mock_dl.fetch_bytes = AsyncMock(return_value=b"jpg")
            await processor.process("[DEEP_RESEARCH: quantum] ignored text", "research quantum", msg, {})

        prompt = handler.ai.reply.await_args.args[0]
        assert "https://q.example" in prompt
        assert handler.ai.reply.await_args.args[2] == "System_Research"
        texts = _sent_texts(handler)
        assert texts[0] == "Summary for you"
        assert texts[1] == "🎬 *Video Found:* https://youtube.com/watch?v=1"
        handler.send_image.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_owner_photo_without_images(self, processor, handler, msg):
        await processor.process("Here he is [OWNER_IMAGE]", "show owner pic", msg, {})
        handler.send_image.assert_not_awaited()
        handler.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owner_photo_sends_file(self, settings, handler, msg, tmp_path):
        photo = tmp_path / "owner.jpg"
        photo.write_bytes(b"jpegbytes")
        settings.owner_images = [str(photo)]
        processor = DirectiveProcessor(handler)
        await processor.process("[TRIGGER_SEND_REAL_OWNER_PHOTO]", "owner photo", msg, {})
        assert handler.send_image.await_args.args[1] == b"jpegbytes"
