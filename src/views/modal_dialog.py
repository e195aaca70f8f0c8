from typing import Dict, Literal, Tuple

from typing_extensions import override

from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Label

from utils.messages import QuitRequestedMessage

ButtonVariant = Literal["primary", "default", "success", "warning", "error"]
Tone = Literal["default", "positive", "warning", "error"]


class DialogModal(ModalScreen[bool]):
    """
    Yes/no confirmation box. Dismisses with True for the primary button,
    False for the secondary one or escape.
    """

    # (primary, secondary) button variants per tone
    VARIANT_MAP: Dict[Tone, Tuple[ButtonVariant, ButtonVariant]] = {
        "default": ("primary", "default"),
        "positive": ("success", "default"),
        "warning": ("warning", "default"),
        "error": ("error", "primary"),
    }

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(
        self,
        caption: str,
        primary_text: str = "OK",
        secondary_text: str = "",
        tone: Tone = "default",
    ):
        super().__init__()
        self.caption = caption
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.tone = tone

    def compose(self) -> ComposeResult:
        with Container(id="div-dialog"):
            yield Label(self.caption, id="caption")
            with Horizontal(id="dialog"):
                if self.secondary_text:
                    yield Button(
                        self.secondary_text,
                        variant=DialogModal.VARIANT_MAP[self.tone][1],
                        id="btn-secondary",
                    )
                yield Button(
                    self.primary_text,
                    variant=DialogModal.VARIANT_MAP[self.tone][0],
                    id="btn-primary",
                )

    def on_mount(self):
        # destructive prompts focus the safe answer
        if self.secondary_text and self.tone == "error":
            self.query_one("#btn-secondary").focus()
        else:
            self.query_one("#btn-primary").focus()

    def action_cancel(self) -> None:
        self.dismiss(False)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.dismiss(True)
        if event.button.id == "btn-secondary":
            self.dismiss(False)


class QuitDialogModal(DialogModal):
    def __init__(self):
        super().__init__(
            "Quit? Items in your cart will be lost.", "Yes", "No", "error"
        )

    @override
    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.app.post_message(QuitRequestedMessage())
            self.dismiss(True)
        else:
            self.dismiss(False)
