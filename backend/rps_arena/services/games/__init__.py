"""Match core: round rules, training sessions against the bot, PvP matchmaking.

This package contains pure(ish) domain logic that should be imported by
HTTP routes and socket handlers, keeping transport concerns separated
from core game mechanics. The session registries below are process-local;
a restart drops every queued player and in-flight match.
"""

from .bot import BotMatchService
from .pvp import Matchmaker

bot_matches = BotMatchService()
matchmaker = Matchmaker(bot_matches)
