"""Tests for keyword command parsing and canned replies."""

from datetime import datetime

import pytest

from wachat.handlers import commands
from wachat.handlers.commands import Command, parse_command
from wachat.state import MediaStats, UserStats


class TestParseCommand:
    @pytest.mark.parametrize("text", ["menu", "help", "/menu", "  MENU  "])
    def test_menu_aliases(self, text):
        assert parse_command(text) == Command(commands.MENU)

    @pytest.mark.parametrize("text,name", [
        ("elite ai", commands.ELITE_AI),
        ("health", commands.HEALTH),
        ("Time", commands.TIME),
        ("joke", commands.JOKE),
        ("quote", commands.QUOTE),
        ("/premium", commands.ABOUT),
        ("owner", commands.ABOUT),
        ("stats", commands.STATS),
        ("gallery", commands.GALLERY),
        ("status", commands.STATUS),
    ])
    def test_exact_commands(self, text, name):
        assert parse_command(text).name == name

    def test_leads_owner_only(self):
        assert parse_command("leads", is_owner=False) is None
        assert parse_command("list leads", is_owner=True).name == commands.LEADS

    def test_fs_subcommand_keeps_rest(self):
        cmd = parse_command("fs create notes.txt | buy milk | eggs")
        assert cmd.name == commands.FS
        assert cmd.sub == "create"
        assert cmd.arg == "notes.txt | buy milk | eggs"

    def test_fs_subcommand_case_insensitive(self):
        assert parse_command("FS LIST").sub == "list"

    def test_unknown_fs_subcommand_goes_to_ai(self):
        assert parse_command("fs format everything") is None

    def test_song_and_video(self):
        assert parse_command("song Tum Hi Ho") == Command(commands.SONG, arg="Tum Hi Ho")
        assert parse_command("play song Kesariya") == Command(commands.SONG, arg="Kesariya")
        assert parse_command("video cat fails") == Command(commands.VIDEO, arg="cat fails")
        assert parse_command("play video lofi") == Command(commands.VIDEO, arg="lofi")

    def test_nuke_requires_owner_and_keyword(self):
        assert parse_command("mazhar nuke", is_owner=True).name == commands.NUKE
        assert parse_command("mazhar nuke", is_owner=False) is None
        assert parse_command("zed nuke", is_owner=True, keyword="zed").name == commands.NUKE
        assert parse_command("mazhar nuke", is_owner=True, keyword="zed") is None

    def test_exact_match_only(self):
        assert parse_command("health check please") is None
        assert parse_command("tell me a joke") is None

    def test_free_text_is_not_a_command(self):
        assert parse_command("mazhar what is react?") is None
        assert parse_command("") is None


class TestReplies:
    def test_menu_mentions_names(self, settings):
        menu = commands.build_menu(settings)
        assert settings.bot_name in menu
        assert settings.owner_name in menu
        assert "fs help" in menu

    def test_leads_text_empty(self):
        assert "koi leads nahi" in commands.leads_text([])

    def test_leads_text_lists_numbers(self):
        text = commands.leads_text([{"jid": "923001234567@s.whatsapp.net", "name": "Ali", "project": "Shop"}])
        assert "1. *Ali*: Shop (923001234567)" in text
        assert "Total: 1 leads" in text

    def test_time_text(self):
        assert commands.time_text(datetime(2024, 5, 1, 13, 45, 0)).endswith("2024-05-01 13:45:00")

    def test_health_text(self):
        text = commands.health_text(42.9)
        assert "Uptime: 42s" in text
        assert "Peak Memory:" in text and "MB" in text

    def test_joke_and_quote_from_pools(self):
        assert commands.joke_text().split("\n\n", 1)[1] in commands.JOKES
        assert commands.quote_text().split("\n\n", 1)[1] in commands.QUOTES

    def test_stats_text(self):
        stats = UserStats(messages=7, first_seen=datetime(2024, 1, 2, 3, 4, 5))
        text = commands.stats_text(stats, "Lead", "Bot")
        assert "Messages Sent: *7*" in text
        assert "2024-01-02 03:04:05" in text
        assert "Profile: *Lead*" in text

    def test_gallery_text_without_media(self):
        assert "No media yet" in commands.gallery_text(MediaStats())

    def test_status_text(self):
        assert commands.status_text({}) == "No presence data yet."
        text = commands.status_text({
            "111@s.whatsapp.net": {"status": "available"},
            "222@s.whatsapp.net": {"status": "composing"},
            "333@s.whatsapp.net": {"status": "unavailable"},
        })
        assert "111: 🟢 online" in text
        assert "222: ✍️ typing..." in text
        assert "333: ⚪ offline" in text
