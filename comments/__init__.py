from .models import CommentEmoji, CommentItem, CommentRun
from .parser import parse

__all__ = ["CommentEmoji", "CommentItem", "CommentRun", "parse"]
