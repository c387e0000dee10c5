"""Discord channel — slash commands, stop buttons and conversation replies.

Raphaël only answers where it was invited: text channels joined with
/talk (until /stop or the Stop button) and DMs opened with /dm.
/messbasse is a one-off private exchange shown only to the caller.
"""

import asyncio
import logging
import os
import platform
import resource
import time
from typing import Optional

import discord
from discord import app_commands

from ..communication.directives import RenameDirective
from ..communication.errors import classify_error
from ..communication.links import MAX_LINKS, ExtractedLink
from ..communication.outbound import StructuredReply, build_embed, message_content
from ..communication.sanitize import CustomEmoji, EmojiCatalog
from ..config import RaphaelSettings
from ..conversation import ChatRelay
from ..db.models import upsert_user
from ..prompts import DM_STARTER, TALK_STARTER, UserContext, append_user_context

logger = logging.getLogger("raphael.discord")

STOP_BUTTON_PREFIX = "raphael-stop-"
MAX_NICKNAME_LENGTH = 32
EMPTY_REPLY = "⚠️ Le modèle a renvoyé une réponse vide. Réessaie."

JOIN_COLOR = 0x2ECC71
LEAVE_COLOR = 0xE74C3C


# ── Session keys ─────────────────────────────────────────

def channel_key(guild_id: Optional[int], channel_id: int) -> str:
    return f"{guild_id or 'dm'}:{channel_id}"


def private_key(user_id: int) -> str:
    return f"priv:{user_id}"


def dm_key(user_id: int) -> str:
    return f"dm:{user_id}"


# ── Helpers ──────────────────────────────────────────────

def format_duration(seconds: float) -> str:
    """Format an uptime like '1d 2h 3m 4s' (zero days/hours/minutes omitted)."""
    seconds = int(seconds)
    d, rem = divmod(seconds, 86400)
    h, rem = divmod(rem, 3600)
    m, s = divmod(rem, 60)
    parts = []
    if d:
        parts.append(f"{d}d")
    if h:
        parts.append(f"{h}h")
    if m:
        parts.append(f"{m}m")
    parts.append(f"{s}s")
    return " ".join(parts)


def stop_button_id(channel_id: int, now: Optional[float] = None) -> str:
    now = time.time() if now is None else now
    return f"{STOP_BUTTON_PREFIX}{channel_id}-{int(now * 1000)}"


def parse_stop_button_id(custom_id: str) -> Optional[int]:
    """Channel ID from a Stop button custom ID, None for other components."""
    if not custom_id or not custom_id.startswith(STOP_BUTTON_PREFIX):
        return None
    channel_part = custom_id[len(STOP_BUTTON_PREFIX):].split("-", 1)[0]
    return int(channel_part) if channel_part.isdigit() else None


def emoji_catalog(guild: Optional[discord.Guild]) -> Optional[EmojiCatalog]:
    if guild is None:
        return None
    return {e.name: CustomEmoji(name=e.name, id=e.id) for e in guild.emojis}


def user_context(
    user: discord.abc.User,
    member: Optional[discord.Member],
    guild: Optional[discord.Guild],
) -> UserContext:
    if member is not None:
        display_name = member.display_name
    else:
        display_name = getattr(user, "global_name", None) or user.name
    emojis = [f"<:{e.name}:{e.id}>" for e in guild.emojis if e.available] if guild else []
    roles = [r.name for r in member.roles if not r.managed and not r.is_default()] if member else []
    return UserContext(
        display_name=display_name,
        user_id=str(user.id),
        guild_name=guild.name if guild else None,
        emojis=emojis,
        roles=roles,
    )


def can_manage(guild: discord.Guild, member: discord.Member) -> bool:
    """Whether the bot may change this member's nickname."""
    me = guild.me
    if me is None or member.id == guild.owner_id:
        return False
    if not me.guild_permissions.manage_nicknames:
        return False
    return me.top_role > member.top_role


def build_view(links: list[ExtractedLink], stop_id: Optional[str] = None) -> Optional[discord.ui.View]:
    """Link buttons on the first row, the Stop button under them."""
    if not links and stop_id is None:
        return None
    view = discord.ui.View(timeout=None)
    for link in links[:MAX_LINKS]:
        view.add_item(discord.ui.Button(style=discord.ButtonStyle.link, label=link.label, url=link.url, row=0))
    if stop_id is not None:
        view.add_item(discord.ui.Button(
            style=discord.ButtonStyle.danger,
            label="Stop",
            custom_id=stop_id,
            row=1 if links else 0,
        ))
    return view


def _system_memory_percent() -> str:
    try:
        total = os.sysconf("SC_PHYS_PAGES")
        available = os.sysconf("SC_AVPHYS_PAGES")
    except (ValueError, OSError, AttributeError):
        return "n/a"
    if total <= 0:
        return "n/a"
    return f"{(total - available) / total * 100:.1f}%"


class _TypingIndicator:
    """Keeps Discord's 'typing…' visible every 7s until cancelled.

    Usage:
        async with _TypingIndicator(channel):
            await long_running_work()

    Best-effort: a channel where we cannot type just stays silent.
    """

    def __init__(self, channel: discord.abc.Messageable, interval: float = 7.0, max_duration: float = 300.0):
        self._channel = channel
        self._interval = interval
        self._max_duration = max_duration
        self._task: Optional[asyncio.Task] = None

    async def _loop(self):
        start = time.monotonic()
        try:
            while time.monotonic() - start <= self._max_duration:
                await self._channel.typing()
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            pass
        except discord.HTTPException as e:
            logger.debug(f"Typing indicator stopped: {e}")

    async def __aenter__(self):
        self._task = asyncio.create_task(self._loop())
        return self

    async def __aexit__(self, *exc):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass


class DiscordChannel(discord.Client):
    """Discord bot adapter for Raphaël."""

    def __init__(self, relay: ChatRelay, settings: RaphaelSettings):
        intents = discord.Intents.default()
        intents.members = True
        intents.message_content = True
        super().__init__(intents=intents)
        self.relay = relay
        self.settings = settings
        self.tree = app_commands.CommandTree(self)
        self.started_at = time.monotonic()
        self.active_channels: set[int] = set()
        self.active_dms: set[int] = set()
        # channel_id -> ID of the message currently carrying the Stop button
        self.stop_messages: dict[int, int] = {}
        self._register_commands()

    # ── Lifecycle ────────────────────────────────────────────

    async def setup_hook(self):
        if not self.settings.discord_client_id:
            logger.warning("Skipping command registration: DISCORD_CLIENT_ID not set.")
            return
        await self.tree.sync()
        logger.info("Slash commands registered globally.")

    async def on_ready(self):
        logger.info(f"Logged in as {self.user}")

    def _register_commands(self):
        tree = self.tree

        @tree.command(name="ping", description="Replies with pong!")
        async def ping(interaction: discord.Interaction):
            await self._cmd_ping(interaction)

        @tree.command(name="modele", description="Choisir le modèle Ollama ou afficher le modèle actif")
        @app_commands.describe(
            nom="Nom du modèle (ex: llama3.1)",
            reset="Réinitialiser l'historique de conversation",
        )
        async def modele(interaction: discord.Interaction, nom: Optional[str] = None, reset: bool = False):
            await self._cmd_modele(interaction, nom, reset)

        @tree.command(name="talk", description="Parler avec l'IA et laisser agir le bot (Raphaël)")
        @app_commands.describe(salon="Salon où Raphaël répondra")
        async def talk(interaction: discord.Interaction, salon: Optional[discord.TextChannel] = None):
            await self._cmd_talk(interaction, salon)

        @tree.command(name="messbasse", description="Conversation privée avec Raphaël (éphémère)")
        @app_commands.describe(prompt="Ce que tu veux dire à Raphaël")
        async def messbasse(interaction: discord.Interaction, prompt: str):
            await self._cmd_messbasse(interaction, prompt)

        @tree.command(name="stop", description="Arrêter Raphaël pour un salon (comme le bouton Stop)")
        @app_commands.describe(salon="Salon où Raphaël doit s'arrêter")
        async def stop(interaction: discord.Interaction, salon: Optional[discord.TextChannel] = None):
            await self._cmd_stop(interaction, salon)

        @tree.command(name="dm", description="Lancer une conversation DM avec Raphaël")
        async def dm(interaction: discord.Interaction):
            await self._cmd_dm(interaction)

    # ── Reply helpers ────────────────────────────────────────

    def _reply_payload(
        self,
        reply: StructuredReply,
        notes: Optional[list[str]] = None,
        stop_id: Optional[str] = None,
        fallback_embed: Optional[discord.Embed] = None,
    ) -> dict:
        """content / embed / view kwargs for send(), reply() or edits."""
        content = message_content(reply, notes)
        if reply.rich_content is not None:
            embed = discord.Embed.from_dict(build_embed(reply.rich_content))
        else:
            embed = fallback_embed
        if not content and embed is None:
            content = EMPTY_REPLY
        return {
            "content": content or None,
            "embed": embed,
            "view": build_view(reply.links, stop_id),
        }

    async def _rename_member(self, action: RenameDirective, guild: Optional[discord.Guild]) -> str:
        if guild is None:
            return "Changement de pseudo impossible hors serveur."
        try:
            member = await guild.fetch_member(int(action.target_user_id))
        except (ValueError, discord.HTTPException) as e:
            logger.error(f"change_nick failed for {action.target_user_id}: {e}")
            return "Échec du changement de pseudo (permissions ?)."
        if not can_manage(guild, member):
            return "Impossible de modifier ce membre (permissions/hiérarchie)."
        try:
            await member.edit(nick=action.new_nickname[:MAX_NICKNAME_LENGTH])
        except discord.HTTPException as e:
            logger.error(f"change_nick failed for {member.id}: {e}")
            return "Échec du changement de pseudo (permissions ?)."
        logger.info(f"Renamed {member} to {action.new_nickname}")
        return f"Pseudo de {member} mis à jour: {action.new_nickname}"

    async def _perform_actions(self, actions: list[RenameDirective], guild: Optional[discord.Guild]) -> list[str]:
        """Run rename actions, returning one outcome note per action."""
        if not actions:
            return []
        return list(await asyncio.gather(*(self._rename_member(a, guild) for a in actions)))

    async def _clear_stop_button(self, channel: discord.TextChannel):
        message_id = self.stop_messages.pop(channel.id, None)
        if message_id is None:
            return
        try:
            await channel.get_partial_message(message_id).edit(view=None)
        except discord.HTTPException as e:
            logger.warning(f"Failed to clear old stop button in {channel.id}: {e}")

    async def _record_user(self, user: discord.abc.User):
        try:
            await upsert_user(str(user.id), user.name, user.discriminator)
        except Exception as e:
            logger.warning(f"Failed to record stats for user {user.id}: {e}")

    # ── Slash commands ───────────────────────────────────────

    async def _cmd_ping(self, interaction: discord.Interaction):
        start = time.perf_counter()
        await interaction.response.defer(ephemeral=True)

        api_latency = (discord.utils.utcnow() - interaction.created_at).total_seconds() * 1000
        # ru_maxrss is in KiB on Linux
        rss_mb = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss / 1024

        embed = discord.Embed(title="Monitoring", color=JOIN_COLOR)
        embed.add_field(name="Latences", value=f"WS: {self.latency * 1000:.0f} ms\nAPI: {api_latency:.0f} ms")
        embed.add_field(
            name="Process",
            value=f"Uptime: {format_duration(time.monotonic() - self.started_at)}\nRSS max: {rss_mb:.1f} MB",
        )
        embed.add_field(
            name="Système",
            value=f"RAM utilisée: {_system_memory_percent()}\nPython: {platform.python_version()}",
        )
        embed.set_footer(text=f"Modèle: {self.relay.store.active_model} · Total: {(time.perf_counter() - start) * 1000:.0f} ms")
        await interaction.edit_original_response(embed=embed)

    async def _cmd_modele(self, interaction: discord.Interaction, nom: Optional[str], reset: bool):
        store = self.relay.store
        if not nom or not nom.strip():
            await interaction.response.send_message(f"Modèle actif: {store.active_model}", ephemeral=True)
            return
        store.set_active_model(nom.strip())
        if reset:
            store.clear_all()
        suffix = " (historique réinitialisé)" if reset else ""
        await interaction.response.send_message(f"Modèle actif: {store.active_model}{suffix}", ephemeral=True)

    async def _cmd_stop(self, interaction: discord.Interaction, salon: Optional[discord.TextChannel]):
        channel = salon or interaction.channel
        if not isinstance(channel, discord.TextChannel):
            await interaction.response.send_message("Choisis un salon texte du serveur.", ephemeral=True)
            return

        await self._clear_stop_button(channel)
        self.active_channels.discard(channel.id)

        try:
            await channel.send(embed=discord.Embed(
                title="Raphaël s'éclipse",
                description="Il n'écoutera plus ce salon jusqu'à nouvel ordre.",
                color=LEAVE_COLOR,
            ))
        except discord.HTTPException as e:
            logger.warning(f"Failed to send leave embed via /stop: {e}")

        logger.info(f"Stopped listening to channel {channel.id}")
        await interaction.response.send_message(f"Raphaël a été arrêté pour {channel.mention}.", ephemeral=True)

    async def _cmd_talk(self, interaction: discord.Interaction, salon: Optional[discord.TextChannel]):
        channel = salon or interaction.channel
        if not isinstance(channel, discord.TextChannel):
            await interaction.response.send_message("Choisis un salon texte du serveur.", ephemeral=True)
            return

        member = interaction.user if isinstance(interaction.user, discord.Member) else None
        await interaction.response.defer(ephemeral=True)
        key = channel_key(interaction.guild_id, channel.id)
        name = member.display_name if member else interaction.user.display_name

        try:
            prompt = append_user_context(
                TALK_STARTER.format(name=name),
                user_context(interaction.user, member, interaction.guild),
            )
            async with _TypingIndicator(channel):
                reply = await self.relay.chat(prompt, key, emoji_catalog(interaction.guild))
            notes = await self._perform_actions(reply.actions, interaction.guild)

            await self._clear_stop_button(channel)
            join_embed = discord.Embed(
                title="Raphaël a rejoint la conversation",
                description="Tous les membres peuvent interagir avec lui ici.",
                color=JOIN_COLOR,
            )
            sent = await channel.send(**self._reply_payload(
                reply, notes=notes, stop_id=stop_button_id(channel.id), fallback_embed=join_embed,
            ))
            self.stop_messages[channel.id] = sent.id
            self.active_channels.add(channel.id)
            logger.info(f"Joined channel {channel.id} ({key})")

            await interaction.edit_original_response(content=f"Réponse envoyée dans {channel.mention}.")
        except Exception as e:
            logger.error(f"talk command failed: {e}", exc_info=True)
            await interaction.edit_original_response(content=classify_error(e))

    async def _cmd_messbasse(self, interaction: discord.Interaction, prompt: str):
        member = interaction.user if isinstance(interaction.user, discord.Member) else None
        key = private_key(interaction.user.id)
        await interaction.response.defer(ephemeral=True)

        try:
            full_prompt = append_user_context(prompt, user_context(interaction.user, member, interaction.guild))
            reply = await self.relay.chat(full_prompt, key, emoji_catalog(interaction.guild))
            notes = await self._perform_actions(reply.actions, interaction.guild)
            await interaction.edit_original_response(**self._reply_payload(reply, notes=notes))
        except Exception as e:
            logger.error(f"messbasse command failed: {e}", exc_info=True)
            await interaction.edit_original_response(content=classify_error(e))

    async def _cmd_dm(self, interaction: discord.Interaction):
        user = interaction.user
        member = user if isinstance(user, discord.Member) else None
        await interaction.response.defer(ephemeral=True)

        try:
            dm_channel = await user.create_dm()
            prompt = append_user_context(
                DM_STARTER.format(name=user.name),
                user_context(user, member, interaction.guild),
            )
            async with _TypingIndicator(dm_channel):
                reply = await self.relay.chat(prompt, dm_key(user.id), emoji_catalog(interaction.guild))
            notes = await self._perform_actions(reply.actions, interaction.guild)
            await dm_channel.send(**self._reply_payload(reply, notes=notes))

            self.active_dms.add(user.id)
            logger.info(f"DM conversation opened with {user.id}")
            await interaction.edit_original_response(content="Conversation DM lancée.")
        except Exception as e:
            logger.error(f"dm command failed: {e}", exc_info=True)
            await interaction.edit_original_response(content=classify_error(e))

    # ── Components ───────────────────────────────────────────

    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type != discord.InteractionType.component:
            return
        channel_id = parse_stop_button_id((interaction.data or {}).get("custom_id", ""))
        if channel_id is None:
            return

        self.active_channels.discard(channel_id)
        self.stop_messages.pop(channel_id, None)
        logger.info(f"Stop button pressed for channel {channel_id}")

        try:
            await interaction.message.edit(view=None)
        except discord.HTTPException as e:
            logger.warning(f"Failed to disable stop button: {e}")

        try:
            await interaction.channel.send(embed=discord.Embed(
                title="Raphaël ignore maintenant ce salon",
                color=LEAVE_COLOR,
            ))
        except discord.HTTPException as e:
            logger.warning(f"Failed to send leave embed: {e}")

        await interaction.response.send_message("Raphaël ignore désormais ce salon.", ephemeral=True)

    # ── Messages ─────────────────────────────────────────────

    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return

        in_guild = message.guild is not None
        if in_guild:
            if message.channel.id not in self.active_channels:
                return
            key = channel_key(message.guild.id, message.channel.id)
            member = message.author if isinstance(message.author, discord.Member) else None
        else:
            if message.author.id not in self.active_dms:
                return
            key = dm_key(message.author.id)
            member = None

        prompt = (message.content or "").strip()
        if not prompt:
            return

        await self._record_user(message.author)
        logger.info(f"[{key}] {message.author} ({message.author.id}): {prompt[:100]}")

        try:
            full_prompt = append_user_context(prompt, user_context(message.author, member, message.guild))
            async with _TypingIndicator(message.channel):
                reply = await self.relay.chat(full_prompt, key, emoji_catalog(message.guild))
            notes = await self._perform_actions(reply.actions, message.guild)

            stop_id = None
            if in_guild:
                await self._clear_stop_button(message.channel)
                stop_id = stop_button_id(message.channel.id)
            sent = await message.reply(**self._reply_payload(reply, notes=notes, stop_id=stop_id))
            if in_guild:
                self.stop_messages[message.channel.id] = sent.id
        except Exception as e:
            logger.error(f"message handler failed: {e}", exc_info=True)
            try:
                await message.reply(classify_error(e))
            except discord.HTTPException:
                pass
