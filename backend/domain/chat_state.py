"""Machine à états du cycle de vie d'une conversation côté client.

États observables:
- idle: aucun contexte de conversation
- new: l'utilisateur démarre une nouvelle conversation, rien n'est persisté
- creating: premier message envoyé, création de la conversation en cours côté serveur
- active: un identifiant de conversation confirmé par le serveur est lié
- loading: une conversation existante est en cours d'hydratation

Transitions:
- idle -> new | loading
- new -> creating | loading
- creating -> active (serveur a confirmé l'id) | new (échec de création)
- loading -> active | loading (autre conversation) | new | idle (URL sans paramètre)
- active -> new | loading

La seule source de vérité est l'état de la machine; `ConversationCache` (équivalent de l'URL et du
stockage local) n'en est qu'une vue recalculée à chaque transition.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, MutableMapping
from enum import Enum

import structlog

log = structlog.get_logger(__name__)


class ChatState(str, Enum):
    """États observables par le client."""

    IDLE = "idle"
    LOADING = "loading"
    NEW = "new"
    CREATING = "creating"
    ACTIVE = "active"


_ALLOWED: dict[ChatState, frozenset[ChatState]] = {
    ChatState.IDLE: frozenset({ChatState.NEW, ChatState.LOADING}),
    ChatState.NEW: frozenset({ChatState.NEW, ChatState.CREATING, ChatState.LOADING}),
    ChatState.CREATING: frozenset({ChatState.ACTIVE, ChatState.NEW}),
    ChatState.LOADING: frozenset(
        {ChatState.ACTIVE, ChatState.LOADING, ChatState.NEW, ChatState.IDLE}
    ),
    ChatState.ACTIVE: frozenset({ChatState.NEW, ChatState.LOADING}),
}


class InvalidTransition(RuntimeError):
    """Transition non autorisée depuis l'état courant."""

    def __init__(self, current: ChatState, target: ChatState) -> None:
        """Construit l'erreur avec les deux états concernés."""
        super().__init__(f"invalid transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


class ConversationCache:
    """Vue persistée de l'id de conversation active, par chatbot."""

    def __init__(self, storage: MutableMapping[str, str] | None = None) -> None:
        """Utilise un dict en mémoire si aucun stockage n'est fourni."""
        self._storage: MutableMapping[str, str] = storage if storage is not None else {}

    @staticmethod
    def key(chatbot_id: str) -> str:
        return f"conversationId_{chatbot_id}"

    def get(self, chatbot_id: str) -> str | None:
        return self._storage.get(self.key(chatbot_id))

    def sync(self, chatbot_id: str, conversation_id: str | None) -> None:
        """Aligne la vue sur l'id courant (suppression si None)."""
        if conversation_id is None:
            self._storage.pop(self.key(chatbot_id), None)
        else:
            self._storage[self.key(chatbot_id)] = conversation_id


class ChatStateMachine:
    """Machine à états explicite pour une paire chatbot/utilisateur."""

    def __init__(
        self,
        chatbot_id: str,
        cache: ConversationCache | None = None,
        on_state_clearing: Callable[[], None] | None = None,
    ) -> None:
        """Démarre en `idle`, sans conversation liée."""
        self.chatbot_id = chatbot_id
        self.cache = cache or ConversationCache()
        self._on_state_clearing = on_state_clearing or (lambda: None)
        self._state = ChatState.IDLE
        self._conversation_id: str | None = None
        self._prev_url_conversation_id: str | None = None
        # Verrou synchrone tenu pendant `creating`.
        self._transition_lock = threading.Lock()

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def is_transitioning(self) -> bool:
        return self._transition_lock.locked()

    @property
    def should_load_messages(self) -> bool:
        """Vrai quand la conversation liée doit être hydratée."""
        return self._state is ChatState.LOADING and self._conversation_id is not None

    def set_on_state_clearing(self, callback: Callable[[], None]) -> None:
        self._on_state_clearing = callback

    def _move(self, target: ChatState, conversation_id: str | None) -> None:
        if target not in _ALLOWED[self._state]:
            raise InvalidTransition(self._state, target)
        log.debug(
            "chat_state_transition",
            chatbot_id=self.chatbot_id,
            source=self._state.value,
            target=target.value,
        )
        self._state = target
        self._conversation_id = conversation_id
        self.cache.sync(self.chatbot_id, conversation_id)

    def start_new_conversation(self) -> bool:
        """L'utilisateur demande une nouvelle conversation.

        Sans effet (False) pendant `creating`: seul `creation_failed` ramène en `new`.
        """
        if self.is_transitioning:
            log.info("chat_state_new_suppressed_creating", chatbot_id=self.chatbot_id)
            return False
        self._on_state_clearing()
        self._move(ChatState.NEW, None)
        return True

    def start_creating(self) -> bool:
        """Premier message envoyé: passe en `creating` et prend le verrou.

        Retourne False (sans effet) si une création est déjà en cours, afin qu'une même action
        utilisateur ne crée jamais deux conversations.
        """
        if not self._transition_lock.acquire(blocking=False):
            log.info("chat_state_duplicate_creating_suppressed", chatbot_id=self.chatbot_id)
            return False
        try:
            self._move(ChatState.CREATING, None)
        except InvalidTransition:
            self._transition_lock.release()
            raise
        return True

    def conversation_created(self, conversation_id: str) -> None:
        """Le serveur a confirmé l'id: `creating -> active`, verrou relâché."""
        if not conversation_id:
            raise ValueError("conversation_id requis")
        try:
            self._move(ChatState.ACTIVE, conversation_id)
        finally:
            self._release()

    def creation_failed(self) -> None:
        """La création a échoué: retour en `new`, verrou relâché."""
        try:
            self._move(ChatState.NEW, None)
        finally:
            self._release()

    def load_conversation(self, conversation_id: str) -> bool:
        """Hydrate une conversation existante; sans effet (False) pendant `creating`."""
        if not conversation_id:
            raise ValueError("conversation_id requis")
        if self.is_transitioning:
            log.info("chat_state_load_suppressed_creating", chatbot_id=self.chatbot_id)
            return False
        self._on_state_clearing()
        self._move(ChatState.LOADING, conversation_id)
        return True

    def messages_loaded(self) -> bool:
        """`loading -> active`; sans effet (False) depuis un autre état."""
        if self._state is not ChatState.LOADING:
            return False
        self._move(ChatState.ACTIVE, self._conversation_id)
        return True

    def sync_from_url(self, url_conversation_id: str | None, is_new: bool = False) -> None:
        """Réagit à un changement d'URL (navigation), ignoré pendant une transition.

        Priorités: id dans l'URL > `?new=true` > aucun paramètre. Un `?new=true` périmé (l'URL n'a
        pas encore rattrapé une création) ne fait pas quitter l'état `active`.
        """
        if self.is_transitioning:
            log.debug("chat_state_url_ignored_transitioning", chatbot_id=self.chatbot_id)
            return
        if url_conversation_id:
            if url_conversation_id != self._conversation_id:
                self.load_conversation(url_conversation_id)
            self._prev_url_conversation_id = url_conversation_id
            return
        if is_new:
            fresh = self._prev_url_conversation_id is not None
            already_new = self._state in (ChatState.NEW, ChatState.CREATING)
            stale = self._state is ChatState.ACTIVE and self._conversation_id and not fresh
            if not already_new and not stale:
                self.start_new_conversation()
            self._prev_url_conversation_id = None
            return
        if self._state is ChatState.LOADING:
            self._on_state_clearing()
            self._move(ChatState.IDLE, None)

    def _release(self) -> None:
        if self._transition_lock.locked():
            self._transition_lock.release()
