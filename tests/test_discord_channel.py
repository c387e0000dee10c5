"""Tests for the Discord channel adapter (discord objects mocked)."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import discord

from raphael.channels.discord import (
    EMPTY_REPLY,
    DiscordChannel,
    build_view,
    can_manage,
    channel_key,
    dm_key,
    emoji_catalog,
    format_duration,
    parse_stop_button_id,
    private_key,
    stop_button_id,
    user_context,
)
from raphael.communication.directives import RenameDirective, RichContentDirective
from raphael.communication.links import ExtractedLink
from raphael.communication.outbound import StructuredReply
from raphael.communication.sanitize import CustomEmoji


def _emoji(name, id, available=True):
    e = MagicMock()
    e.name = name
    e.id = id
    e.available = available
    return e


def _guild(emojis=(), owner_id=1, manage_nicknames=True, bot_top_role=10):
    guild = MagicMock()
    guild.id = 100
    guild.name = "Tempest"
    guild.emojis = list(emojis)
    guild.owner_id = owner_id
    guild.me.guild_permissions.manage_nicknames = manage_nicknames
    guild.me.top_role = bot_top_role
    return guild


def _member(id=42, top_role=1):
    member = MagicMock()
    member.id = id
    member.top_role = top_role
    member.edit = AsyncMock()
    member.__str__.return_value = "rimuru"
    return member


def _relay(reply=None):
    from raphael.session import SessionStore
    relay = MagicMock()
    relay.store = SessionStore(default_model="llama3.1")
    relay.chat = AsyncMock(return_value=reply or StructuredReply(display_text="Salut"))
    return relay


# ── Pure helpers ─────────────────────────────────────────────

class TestKeys:
    def test_channel(self):
        assert channel_key(100, 200) == "100:200"

    def test_channel_without_guild(self):
        assert channel_key(None, 200) == "dm:200"

    def test_private_and_dm(self):
        assert private_key(7) == "priv:7"
        assert dm_key(7) == "dm:7"


class TestFormatDuration:
    def test_seconds(self):
        assert format_duration(5) == "5s"

    def test_full(self):
        assert format_duration(86400 + 2 * 3600 + 3 * 60 + 4) == "1d 2h 3m 4s"

    def test_skips_zero_units(self):
        assert format_duration(3600) == "1h 0s"


class TestStopButtonId:
    def test_round_trip(self):
        custom_id = stop_button_id(123456789, now=1700000000.5)
        assert custom_id == "raphael-stop-123456789-1700000000500"
        assert parse_stop_button_id(custom_id) == 123456789

    def test_other_components(self):
        assert parse_stop_button_id("something-else") is None
        assert parse_stop_button_id("") is None
        assert parse_stop_button_id("raphael-stop-abc-1") is None


class TestEmojiCatalog:
    def test_guild(self):
        catalog = emoji_catalog(_guild([_emoji("slime", 5)]))
        assert catalog == {"slime": CustomEmoji(name="slime", id=5)}

    def test_dm(self):
        assert emoji_catalog(None) is None


class TestUserContext:
    def test_dm_user(self):
        user = MagicMock()
        user.id = 42
        user.name = "rimuru"
        user.global_name = "Rimuru"
        ctx = user_context(user, None, None)
        assert ctx.display_name == "Rimuru"
        assert ctx.user_id == "42"
        assert ctx.guild_name is None
        assert ctx.emojis == []

    def test_guild_member(self):
        admin = MagicMock()
        admin.name = "Admin"
        admin.managed = False
        admin.is_default.return_value = False
        everyone = MagicMock()
        everyone.managed = False
        everyone.is_default.return_value = True

        member = MagicMock()
        member.id = 42
        member.display_name = "Sir Rimuru"
        member.roles = [everyone, admin]

        guild = _guild([_emoji("slime", 5), _emoji("gone", 6, available=False)])
        ctx = user_context(member, member, guild)
        assert ctx.display_name == "Sir Rimuru"
        assert ctx.guild_name == "Tempest"
        assert ctx.emojis == ["<:slime:5>"]
        assert ctx.roles == ["Admin"]


class TestCanManage:
    def test_allowed(self):
        assert can_manage(_guild(), _member(top_role=1))

    def test_owner(self):
        assert not can_manage(_guild(owner_id=42), _member(id=42))

    def test_missing_permission(self):
        assert not can_manage(_guild(manage_nicknames=False), _member())

    def test_hierarchy(self):
        assert not can_manage(_guild(bot_top_role=3), _member(top_role=5))


class TestBuildView:
    def test_nothing(self):
        assert build_view([]) is None

    @pytest.mark.asyncio
    async def test_links_and_stop(self):
        links = [ExtractedLink(label="Docs", url="https://docs.python.org")]
        view = build_view(links, stop_id="raphael-stop-1-2")
        link_button, stop_button = view.children
        assert link_button.url == "https://docs.python.org"
        assert link_button.label == "Docs"
        assert stop_button.custom_id == "raphael-stop-1-2"
        assert stop_button.row == 1


# ── DiscordChannel ───────────────────────────────────────────

class TestReplyPayload:
    @pytest.mark.asyncio
    async def test_plain_text(self, settings):
        bot = DiscordChannel(_relay(), settings)
        payload = bot._reply_payload(StructuredReply(display_text="Salut"))
        assert payload == {"content": "Salut", "embed": None, "view": None}

    @pytest.mark.asyncio
    async def test_rich_content(self, settings):
        bot = DiscordChannel(_relay(), settings)
        reply = StructuredReply(
            display_text="ignoré",
            rich_content=RichContentDirective(description="d", title="Analyse"),
        )
        payload = bot._reply_payload(reply)
        assert payload["content"] is None
        assert payload["embed"].title == "Analyse"

    @pytest.mark.asyncio
    async def test_empty_reply_fallback(self, settings):
        bot = DiscordChannel(_relay(), settings)
        payload = bot._reply_payload(StructuredReply(display_text=""))
        assert payload["content"] == EMPTY_REPLY


class TestRename:
    @pytest.mark.asyncio
    async def test_success(self, settings):
        bot = DiscordChannel(_relay(), settings)
        member = _member()
        guild = _guild()
        guild.fetch_member = AsyncMock(return_value=member)

        note = await bot._rename_member(RenameDirective(target_user_id="42", new_nickname="Rimuru"), guild)

        member.edit.assert_awaited_once_with(nick="Rimuru")
        assert "Rimuru" in note

    @pytest.mark.asyncio
    async def test_nickname_capped(self, settings):
        bot = DiscordChannel(_relay(), settings)
        member = _member()
        guild = _guild()
        guild.fetch_member = AsyncMock(return_value=member)

        await bot._rename_member(RenameDirective(target_user_id="42", new_nickname="x" * 40), guild)

        member.edit.assert_awaited_once_with(nick="x" * 32)

    @pytest.mark.asyncio
    async def test_hierarchy_refused(self, settings):
        bot = DiscordChannel(_relay(), settings)
        member = _member(top_role=50)
        guild = _guild()
        guild.fetch_member = AsyncMock(return_value=member)

        note = await bot._rename_member(RenameDirective(target_user_id="42", new_nickname="Rimuru"), guild)

        member.edit.assert_not_awaited()
        assert "hiérarchie" in note

    @pytest.mark.asyncio
    async def test_forbidden(self, settings):
        bot = DiscordChannel(_relay(), settings)
        member = _member()
        member.edit = AsyncMock(side_effect=discord.Forbidden(MagicMock(status=403, reason="Forbidden"), "Missing Permissions"))
        guild = _guild()
        guild.fetch_member = AsyncMock(return_value=member)

        note = await bot._rename_member(RenameDirective(target_user_id="42", new_nickname="Rimuru"), guild)
        assert "Échec" in note

    @pytest.mark.asyncio
    async def test_outside_guild(self, settings):
        bot = DiscordChannel(_relay(), settings)
        note = await bot._rename_member(RenameDirective(target_user_id="42", new_nickname="Rimuru"), None)
        assert "hors serveur" in note

    @pytest.mark.asyncio
    async def test_perform_actions_one_note_each(self, settings):
        bot = DiscordChannel(_relay(), settings)
        actions = [
            RenameDirective(target_user_id="1", new_nickname="A"),
            RenameDirective(target_user_id="2", new_nickname="B"),
        ]
        assert len(await bot._perform_actions(actions, None)) == 2
        assert await bot._perform_actions([], None) == []


class TestModeleCommand:
    @pytest.mark.asyncio
    async def test_show(self, settings):
        relay = _relay()
        bot = DiscordChannel(relay, settings)
        interaction = MagicMock()
        interaction.response.send_message = AsyncMock()

        await bot._cmd_modele(interaction, None, False)

        assert "llama3.1" in interaction.response.send_message.call_args[0][0]

    @pytest.mark.asyncio
    async def test_set_and_reset(self, settings):
        relay = _relay()
        relay.store.append("k", "a", "b")
        bot = DiscordChannel(relay, settings)
        interaction = MagicMock()
        interaction.response.send_message = AsyncMock()

        await bot._cmd_modele(interaction, " mistral ", True)

        assert relay.store.active_model == "mistral"
        assert relay.store.get("k") == []
        assert "réinitialisé" in interaction.response.send_message.call_args[0][0]


class TestOnMessage:
    def _message(self, channel_id=200, bot=False):
        message = MagicMock()
        message.author.bot = bot
        message.author.id = 42
        message.author.name = "rimuru"
        message.author.global_name = "Rimuru"
        message.author.discriminator = "0"
        message.content = "Bonjour Raphaël"
        message.guild = _guild()
        message.channel.id = channel_id
        message.channel.typing = AsyncMock()
        message.reply = AsyncMock(return_value=MagicMock(id=555))
        return message

    @pytest.mark.asyncio
    async def test_ignores_bots(self, settings):
        relay = _relay()
        bot = DiscordChannel(relay, settings)
        bot.active_channels.add(200)

        await bot.on_message(self._message(bot=True))

        relay.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ignores_inactive_channel(self, settings):
        relay = _relay()
        bot = DiscordChannel(relay, settings)

        await bot.on_message(self._message())

        relay.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replies_in_active_channel(self, settings):
        relay = _relay()
        bot = DiscordChannel(relay, settings)
        bot.active_channels.add(200)
        message = self._message()

        with patch("raphael.channels.discord.upsert_user", new=AsyncMock()) as upsert:
            await bot.on_message(message)

        upsert.assert_awaited_once_with("42", "rimuru", "0")
        assert relay.chat.call_args[0][1] == "100:200"
        assert message.reply.call_args[1]["content"] == "Salut"
        assert bot.stop_messages[200] == 555

    @pytest.mark.asyncio
    async def test_backend_error_reported(self, settings):
        from raphael.llm.provider import LLMUnavailableError
        relay = _relay()
        relay.chat = AsyncMock(side_effect=LLMUnavailableError("http://127.0.0.1:11434"))
        bot = DiscordChannel(relay, settings)
        bot.active_channels.add(200)
        message = self._message()

        with patch("raphael.channels.discord.upsert_user", new=AsyncMock()):
            await bot.on_message(message)

        assert "ollama serve" in message.reply.call_args[0][0]

    @pytest.mark.asyncio
    async def test_rename_outcome_reported(self, settings):
        reply = StructuredReply(
            display_text="Fait.",
            actions=[RenameDirective(target_user_id="42", new_nickname="Rimuru")],
        )
        relay = _relay(reply)
        bot = DiscordChannel(relay, settings)
        bot.active_channels.add(200)
        message = self._message()
        message.guild.fetch_member = AsyncMock(return_value=_member(top_role=50))

        with patch("raphael.channels.discord.upsert_user", new=AsyncMock()):
            await bot.on_message(message)

        content = message.reply.call_args[1]["content"]
        assert content.startswith("Fait.\n\nActions:\n- ")
        assert "hiérarchie" in content


class TestMessbasseCommand:
    @pytest.mark.asyncio
    async def test_notes_reported_with_embed(self, settings):
        reply = StructuredReply(
            display_text="",
            rich_content=RichContentDirective(description="d"),
            actions=[RenameDirective(target_user_id="42", new_nickname="Rimuru")],
        )
        relay = _relay(reply)
        bot = DiscordChannel(relay, settings)
        interaction = MagicMock()
        interaction.user.id = 42
        interaction.guild = None
        interaction.response.defer = AsyncMock()
        interaction.edit_original_response = AsyncMock()

        await bot._cmd_messbasse(interaction, "renomme-moi")

        assert relay.chat.call_args[0][1] == "priv:42"
        kwargs = interaction.edit_original_response.call_args[1]
        assert "hors serveur" in kwargs["content"]
        assert kwargs["embed"] is not None
