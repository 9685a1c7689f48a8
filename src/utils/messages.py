from textual.message import Message


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user confirmed logging out
    """

    bubble = True


class AccountDeleteMessage(Message):
    """
    broadcasted when the user confirmed deleting their account
    """

    bubble = True


class NavigateMessage(Message):
    """
    Ask the app to go to a path, e.g. "/product/p-1001" or "/search?q=lamp".
    Screens never switch screens themselves; the router decides.
    """

    bubble = True

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path


class CartChangedMessage(Message):
    """
    Fired whenever the local cart changed, so the cart count in the sidebar
    and an open cart screen can refresh.

    If posted from a modal, post at App level
    """

    bubble = True


class NewOrderMessage(Message):
    """
    Fired when checkout created an order.
    Listened to by the account orders tab.
    """

    bubble = True

    def __init__(self, order_id: str) -> None:
        super().__init__()
        self.order_id = order_id
