# chatledger/core/errors.py
"""
Ledger errors. All of them are caller-input validation failures: the call that
raised had no effect and may be retried with corrected input.
"""


class LedgerError(Exception):
    """Base for every rejected ledger operation."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateIdentity(LedgerError):
    def __init__(self, user_id):
        super().__init__(f"User '{user_id}' is already registered")
        self.user_id = user_id


class UnknownIdentity(LedgerError):
    def __init__(self, user_id):
        super().__init__(f"User '{user_id}' is not registered")
        self.user_id = user_id


class DuplicateConversation(LedgerError):
    def __init__(self, chat_id):
        super().__init__(f"Chat '{chat_id}' already exists")
        self.chat_id = chat_id


class UnknownConversation(LedgerError):
    def __init__(self, chat_id):
        super().__init__(f"Chat '{chat_id}' does not exist")
        self.chat_id = chat_id


class NotAParticipant(LedgerError):
    def __init__(self, chat_id, user_id):
        super().__init__(f"User '{user_id}' is not a participant of chat '{chat_id}'")
        self.chat_id = chat_id
        self.user_id = user_id
