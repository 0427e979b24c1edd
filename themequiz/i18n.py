"""Message catalog for player-facing strings."""

from typing import Any, Dict

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        "game.preparing_match": "🎵 Preparing the match...",
        "game.next_round": "⏭️ Starting the next round...",
        "game.round_started": "🎧 Round {round} of {rounds} started! Guess the anime, you have {seconds} seconds.",
        "game.answer_is": "The answer is...",
        "game.winners": "✅ Correct answers: {users}",
        "game.round_ended": "🏁 Match ended. Thanks for playing!",
        "game.match_stopped": "⏹️ The match was stopped.",
        "game.match_winner": "🏆 Congrats <@{user}>! You won the match! +{xp} XP",
        "game.no_winner": "Nobody won this match.",
        "game.level_up": "🎉 Congratulations <@{user}>! You just leveled up to **{level}**!",
        "game.already_running": "A match is already running in this server.",
        "game.starting": "Starting a match with {rounds} rounds of {seconds} seconds ({mode}).",
        "game.not_running": "There is no match running in this server.",
        "game.stop_requested": "Stopping the match...",
        "game.hint": "💡 Hint: {hint}",
        "game.no_hints": "No more hints for this round.",
        "game.voice_failed": "⚠️ I couldn't play the theme in the voice channel.",
        "errors.precondition": "❌ The match cannot continue.",
        "errors.no_voice_channel": "❌ You need to be in a voice channel to play.",
        "errors.no_users_in_voice": "❌ There are no users left in the voice channel.",
        "errors.invalid_channel_type": "❌ That is not a voice channel.",
        "errors.theme_unavailable": "❌ I couldn't find a new theme to play. Try again later.",
        "errors.stream_unavailable": "❌ I couldn't load the theme's audio stream.",
        "errors.unexpected": "❌ An unexpected error stopped the match.",
        "hints.format": "It is a {format} with {episodes} episodes.",
        "hints.format_only": "It is a {format}.",
        "hints.season": "It aired in {season} {year}.",
        "hints.genres": "Genres: {genres}.",
        "hints.studio": "Animated by {studio}.",
        "hints.title": "The title looks like `{masked}`.",
        "utils.nobody": "Nobody",
    },
    "pt": {
        "game.preparing_match": "🎵 Preparando a partida...",
        "game.next_round": "⏭️ Começando a próxima rodada...",
        "game.round_started": "🎧 Rodada {round} de {rounds} começou! Adivinhe o anime, você tem {seconds} segundos.",
        "game.answer_is": "A resposta é...",
        "game.winners": "✅ Acertaram: {users}",
        "game.round_ended": "🏁 Partida encerrada. Obrigado por jogar!",
        "game.match_stopped": "⏹️ A partida foi interrompida.",
        "game.match_winner": "🏆 Parabéns <@{user}>! Você venceu a partida! +{xp} XP",
        "game.no_winner": "Ninguém venceu esta partida.",
        "game.level_up": "🎉 Parabéns <@{user}>! Você subiu para o nível **{level}**!",
        "game.already_running": "Já existe uma partida em andamento neste servidor.",
        "game.not_running": "Não há nenhuma partida em andamento neste servidor.",
        "game.stop_requested": "Parando a partida...",
        "game.hint": "💡 Dica: {hint}",
        "game.no_hints": "Não há mais dicas nesta rodada.",
        "game.starting": "Iniciando uma partida com {rounds} rodadas de {seconds} segundos ({mode}).",
        "game.voice_failed": "⚠️ Não consegui tocar o tema no canal de voz.",
        "errors.precondition": "❌ A partida não pode continuar.",
        "errors.invalid_channel_type": "❌ Esse não é um canal de voz.",
        "errors.unexpected": "❌ Um erro inesperado interrompeu a partida.",
        "errors.no_voice_channel": "❌ Você precisa estar em um canal de voz para jogar.",
        "errors.no_users_in_voice": "❌ Não há mais usuários no canal de voz.",
        "errors.theme_unavailable": "❌ Não encontrei um tema novo para tocar.",
        "errors.stream_unavailable": "❌ Não consegui carregar o áudio do tema.",
        "utils.nobody": "Ninguém",
    },
}


class I18n:
    def __init__(self, language: str = "en"):
        self._language = language if language in TRANSLATIONS else "en"

    @property
    def language(self) -> str:
        return self._language

    @language.setter
    def language(self, value: str) -> None:
        if value in TRANSLATIONS:
            self._language = value

    def get(self, key: str, **kwargs: Any) -> str:
        translation = TRANSLATIONS.get(self._language, TRANSLATIONS["en"])
        text = translation.get(key, TRANSLATIONS["en"].get(key, key))
        if kwargs:
            try:
                text = text.format(**kwargs)
            except KeyError:
                pass
        return text

    def __call__(self, key: str, **kwargs: Any) -> str:
        return self.get(key, **kwargs)


def get_available_languages() -> Dict[str, str]:
    return {
        "en": "English",
        "pt": "Português",
    }
