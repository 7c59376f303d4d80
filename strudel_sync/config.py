from dataclasses import dataclass

DEFAULT_URL = "https://strudel.cc"


@dataclass
class BridgeConfig:
    url: str = DEFAULT_URL
    headless: bool = False

    # -------- Page layout --------
    container_selector: str = "#code"
    editor_selector: str = "#code .cm-editor"
    content_selector: str = "#code .cm-content"
    evaluate_shortcut: str = "Control+Enter"

    # -------- Timing (seconds) --------
    debounce: float = 0.15
    editable_timeout: float = 10.0
    settle_delay: float = 0.1
    ready_timeout: float = 10.0
    ready_delay: float = 2.0
    shutdown_grace: float = 2.0

    # -------- Locator bounds --------
    ancestor_limit: int = 10
    fiber_depth: int = 30
    search_depth: int = 3

    sync_on_start: bool = False

    @property
    def editable_selector(self):
        return f'{self.content_selector}[contenteditable="true"]'

    @classmethod
    def from_args(cls, args):
        config = cls(
            url=args.url,
            headless=args.headless,
            sync_on_start=args.sync_on_start,
        )
        if args.debounce is not None:
            config.debounce = args.debounce
        return config
