"""Models package."""

from .user import User
from .chat import Chat
from .chat_turn import ChatTurn
from .credit_ledger import CreditLedger
