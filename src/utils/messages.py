from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired whenever a line is added, edited or removed, or the cart is cleared.
    Refreshes the cart screen and the cart badge in the sidebar.

    If posted from outside CartScreen, make sure to post at App level
    """

    bubble = True


class ModeSwitchedMessage(Message):
    """
    fired whenever switch_mode is called
    must be fired from app level
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
