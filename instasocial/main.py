from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical, VerticalScroll
from textual.widgets import Static, Input, Button, TextArea
from textual.reactive import reactive
from textual.screen import ModalScreen, Screen
from rich.text import Text
from typing import Optional
import logging

from .aggregator import format_time_ago, is_liked_by, like_count, total_unread
from .api_interface import LocalAPI
from .config import FLUSH_TIMEOUT, Settings, load_settings
from .errors import InstaSocialError
from .logging_config import setup_logging
from .media import ascii_preview, load_avatar, load_media
from .storage import build_storage

logger = logging.getLogger("instasocial.ui")


def post_text(post, me_id: str) -> Text:
    text = Text()
    text.append(f"@{post.author_username}", style="bold")
    text.append(f"  {format_time_ago(post.created_at)}\n", style="dim")
    if post.content:
        text.append(post.content + "\n")
    if post.media is not None:
        text.append(f"[{post.media.kind} attached]\n", style="italic")
    heart = "♥" if is_liked_by(post, me_id) else "♡"
    text.append(f"{heart} {like_count(post)}   💬 {len(post.comments)}", style="dim")
    return text


class VimList(VerticalScroll):
    """Scrollable list with a j/k cursor over its ``.item`` children."""

    cursor_position = reactive(0)
    can_focus = True

    def items(self):
        return list(self.query(".item"))

    def watch_cursor_position(self, old: int, new: int) -> None:
        items = self.items()
        if old < len(items):
            items[old].remove_class("vim-cursor")
        if new < len(items):
            items[new].add_class("vim-cursor")
            self.scroll_to_widget(items[new])

    def current(self):
        items = self.items()
        if 0 <= self.cursor_position < len(items):
            return items[self.cursor_position]
        return None

    def key_j(self) -> None:
        if self.cursor_position < len(self.items()) - 1:
            self.cursor_position += 1

    def key_k(self) -> None:
        if self.cursor_position > 0:
            self.cursor_position -= 1

    def key_g(self) -> None:
        self.cursor_position = 0

    def key_G(self) -> None:
        self.cursor_position = max(0, len(self.items()) - 1)


# ───────── Auth ─────────
class AuthScreen(Screen):
    """Login / register form shown while nobody is logged in."""

    def compose(self) -> ComposeResult:
        with Vertical(id="auth-box"):
            yield Static("instasocial", id="auth-title")
            yield Input(placeholder="Username (register only)", id="auth-username")
            yield Input(placeholder="Email", id="auth-email")
            yield Input(placeholder="Password", password=True, id="auth-password")
            with Horizontal(id="auth-buttons"):
                yield Button("Log in", id="login-button", variant="primary")
                yield Button("Register", id="register-button")
            yield Static("", id="auth-status")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        api: LocalAPI = self.app.api
        email = self.query_one("#auth-email", Input).value.strip()
        password = self.query_one("#auth-password", Input).value
        try:
            if event.button.id == "register-button":
                username = self.query_one("#auth-username", Input).value.strip()
                api.register(username, email, password)
            elif event.button.id == "login-button":
                api.login(email, password)
            else:
                return
        except InstaSocialError as e:
            self.query_one("#auth-status", Static).update(Text(f"⚠ {e}", style="red"))
            return
        self.dismiss(True)


# ───────── Posts ─────────
class PostItem(Static):
    def __init__(self, post, **kwargs):
        super().__init__(**kwargs)
        self.post = post

    def render(self) -> Text:
        return post_text(self.post, self.app.api.get_current_user().id)


class CommentScreen(ModalScreen):
    BINDINGS = [Binding("escape", "close", "Close")]

    def __init__(self, post_id: str, **kwargs):
        super().__init__(**kwargs)
        self.post_id = post_id

    def compose(self) -> ComposeResult:
        with VerticalScroll(id="comment-box"):
            yield Static("comments", classes="panel-header")
            for c in self.app.api.get_comments(self.post_id):
                yield self._comment_widget(c)
            yield Input(placeholder="Add a comment and press Enter… (Esc to close)", id="comment-input")

    @staticmethod
    def _comment_widget(c) -> Static:
        return Static(
            Text.assemble((f"@{c.author_username} ", "bold"), c.content, (f"  {format_time_ago(c.created_at)}", "dim")),
            classes="comment",
        )

    def on_input_submitted(self, event: Input.Submitted) -> None:
        try:
            comment = self.app.api.add_comment(self.post_id, event.value)
        except InstaSocialError as e:
            self.notify(str(e), severity="error")
            return
        self.query_one("#comment-box").mount(self._comment_widget(comment), before=event.input)
        event.input.value = ""

    def action_close(self) -> None:
        self.dismiss(True)


class NewPostDialog(ModalScreen):
    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def compose(self) -> ComposeResult:
        with Vertical(id="new-post-dialog"):
            yield Static("new post", classes="panel-header")
            yield TextArea(id="post-content")
            yield Input(placeholder="Attach image/video: path to file (optional)", id="post-media")
            with Horizontal():
                yield Button("Post", id="post-button", variant="primary")
                yield Button("Cancel", id="cancel-button")
            yield Static("", id="post-status")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel-button":
            self.dismiss(False)
            return
        content = self.query_one("#post-content", TextArea).text
        media_path = self.query_one("#post-media", Input).value.strip()
        try:
            media = load_media(media_path) if media_path else None
            self.app.api.create_post(content, media)
        except (InstaSocialError, OSError) as e:
            self.query_one("#post-status", Static).update(Text(f"⚠ {e}", style="red"))
            return
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)


class TimelineFeed(VimList):
    def compose(self) -> ComposeResult:
        posts = self.app.api.get_timeline()
        yield Static(f"timeline | {len(posts)} posts | [l] like [c] comments [n] new post", classes="panel-header", markup=False)
        if not posts:
            yield Static("\nNo posts yet. Press n to write the first one.", classes="empty")
        for i, post in enumerate(posts):
            item = PostItem(post, classes="item post")
            if i == 0:
                item.add_class("vim-cursor")
            yield item

    def key_l(self) -> None:
        item = self.current()
        if item is None:
            return
        updated = self.app.api.like_post(item.post.id)
        if updated is not None:
            item.post = updated
            item.refresh()

    def key_c(self) -> None:
        item = self.current()
        if item is not None:
            self.app.push_screen(CommentScreen(item.post.id), lambda _: self.app.show_view("timeline"))


# ───────── Friends ─────────
class UserRow(Horizontal):
    def __init__(self, user, is_friend: bool, **kwargs):
        super().__init__(**kwargs)
        self.user = user
        self.is_friend = is_friend

    def compose(self) -> ComposeResult:
        yield Static(Text.assemble((self.user.username, "bold"), f"  {self.user.email}"), classes="user-name")
        if self.is_friend:
            yield Button("Unfollow", id=f"unfollow-{self.user.id}")
        else:
            yield Button("Follow", id=f"follow-{self.user.id}", variant="primary")
        yield Button("Message", id=f"dm-{self.user.id}")


class FriendsPanel(VerticalScroll):
    def compose(self) -> ComposeResult:
        api: LocalAPI = self.app.api
        yield Static(f"friends | {len(api.get_current_user().friends)} following", classes="panel-header")
        yield Input(placeholder="Search users by name or email…", id="user-search")
        yield Vertical(id="user-results")

    def on_mount(self) -> None:
        self.call_after_refresh(self._show_results, "")

    async def _show_results(self, query: str) -> None:
        api: LocalAPI = self.app.api
        results = self.query_one("#user-results", Vertical)
        await results.remove_children()
        friend_ids = set(api.get_current_user().friends)
        users = api.search_users(query) if query else api.get_friends()
        if not users:
            await results.mount(Static("No users found" if query else "You are not following anyone yet", classes="empty"))
            return
        await results.mount_all([UserRow(u, u.id in friend_ids, classes="user-row") for u in users])

    async def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "user-search":
            await self._show_results(event.value.strip())

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        api: LocalAPI = self.app.api
        action, _, user_id = (event.button.id or "").partition("-")
        try:
            if action == "follow":
                api.add_friend(user_id)
            elif action == "unfollow":
                api.remove_friend(user_id)
            elif action == "dm":
                self.app.action_open_dm(user_id)
                return
            else:
                return
        except InstaSocialError as e:
            self.notify(str(e), severity="error")
            return
        await self._show_results(self.query_one("#user-search", Input).value.strip())


# ───────── Messages ─────────
class ConversationItem(Static):
    def __init__(self, chat, **kwargs):
        super().__init__(**kwargs)
        self.chat = chat

    def render(self) -> Text:
        marker = "🔵 " if self.chat.unread_count else "  "
        text = Text(f"{marker}@{self.chat.peer_username}\n", style="bold")
        text.append(f"  {self.chat.last_message or 'No messages yet'}", style="dim")
        if self.chat.unread_count:
            text.append(f"\n  {self.chat.unread_count} unread")
        return text


class ConversationsList(VimList):
    def compose(self) -> ComposeResult:
        chats = self.app.api.get_conversations()
        yield Static(f"conversations | {total_unread(chats)} unread | [enter] open", classes="panel-header", markup=False)
        for i, chat in enumerate(chats):
            item = ConversationItem(chat, classes="item conversation-item")
            if i == 0:
                item.add_class("vim-cursor")
            yield item

    def key_enter(self) -> None:
        item = self.current()
        if item is not None:
            self.app.action_open_dm(item.chat.peer_id)


class ChatView(VerticalScroll):
    def __init__(self, peer_id: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.peer_id = peer_id

    def compose(self) -> ComposeResult:
        api: LocalAPI = self.app.api
        if self.peer_id is None:
            yield Static("Pick a conversation, or message someone from the friends screen.", classes="empty")
            return
        peer = api.get_user(self.peer_id)
        yield Static(f"@{peer.username} | conversation", classes="panel-header", markup=False)
        for msg in api.get_conversation_messages(self.peer_id):
            yield self._message_widget(msg)
        yield Input(placeholder="Type message and press Enter…", id="message-input")

    def _message_widget(self, msg) -> Static:
        sent = msg.sender_id == self.app.api.get_current_user().id
        return Static(
            Text.assemble(msg.content, (f"\n{format_time_ago(msg.created_at)}", "dim")),
            classes="chat-message " + ("sent" if sent else "received"),
        )

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "message-input":
            return
        try:
            msg = self.app.api.send_message(self.peer_id, event.value)
        except InstaSocialError as e:
            self.notify(str(e), severity="error")
            return
        self.mount(self._message_widget(msg), before=event.input)
        event.input.value = ""
        self.scroll_end(animate=False)


class MessagesScreen(Container):
    def __init__(self, peer_id: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.peer_id = peer_id

    def compose(self) -> ComposeResult:
        yield ConversationsList(id="conversations")
        yield ChatView(self.peer_id, id="chat")


# ───────── Profile ─────────
class ProfilePanel(VerticalScroll):
    def compose(self) -> ComposeResult:
        api: LocalAPI = self.app.api
        me = api.get_current_user()
        stats = api.get_profile_stats()
        yield Static(f"profile | @{me.username}", classes="panel-header", markup=False)
        yield Static(ascii_preview(me.avatar) or me.username[:1].upper(), id="profile-avatar", markup=False)
        yield Static(Text.assemble((me.username, "bold"), f"\n{me.email}\n{me.bio or ''}"))
        yield Static(f"{stats['posts']} posts   {stats['friends']} following", classes="profile-stats")
        yield Input(value=me.bio or "", placeholder="Bio (Enter to save)", id="bio-input")
        yield Input(placeholder="Avatar: path to an image, Enter to upload", id="avatar-input")
        for post in api.get_user_posts():
            yield PostItem(post, classes="post")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        api: LocalAPI = self.app.api
        try:
            if event.input.id == "bio-input":
                api.update_bio(event.value.strip())
                self.notify("Bio updated")
            elif event.input.id == "avatar-input":
                user = api.update_avatar(load_avatar(event.value.strip()).url)
                self.query_one("#profile-avatar", Static).update(ascii_preview(user.avatar) or "")
                event.input.value = ""
                self.notify("Profile picture updated!")
        except (InstaSocialError, OSError) as e:
            self.notify(str(e), severity="error")


# ───────── App ─────────
VIEWS = ("timeline", "friends", "messages", "profile")


class InstaSocialApp(App):
    CSS_PATH = "main.tcss"
    ENABLE_COMMAND_PALETTE = False

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", show=True),
        Binding("f1", "show_view('timeline')", "Timeline", show=True),
        Binding("f2", "show_view('friends')", "Friends", show=True),
        Binding("f3", "show_view('messages')", "Messages", show=True),
        Binding("f4", "show_view('profile')", "Profile", show=True),
        Binding("n", "new_post", "New Post", show=True),
        Binding("ctrl+l", "logout", "Log out", show=True),
    ]

    current_view = reactive("timeline")

    def __init__(self, api: Optional[LocalAPI] = None, settings: Optional[Settings] = None, **kwargs):
        super().__init__(**kwargs)
        self.api = api
        self.settings = settings

    def compose(self) -> ComposeResult:
        yield Static("instasocial", id="app-header")
        yield Container(id="screen-container")
        yield Static(
            "[F1] Timeline [F2] Friends [F3] Messages [F4] Profile [n] New Post [^L] Log out [^Q] Quit",
            id="app-footer",
            markup=False,
        )

    async def on_mount(self) -> None:
        if self.api is None:
            settings = self.settings or load_settings()
            self.api = await LocalAPI.open(build_storage(settings))
        if self.api.is_logged_in:
            await self.show_view("timeline")
        else:
            self.push_screen(AuthScreen(), self._after_auth)

    async def _after_auth(self, _result) -> None:
        await self.show_view("timeline")

    async def show_view(self, name: str, **kwargs) -> None:
        if name not in VIEWS or not self.api.is_logged_in:
            return
        container = self.query_one("#screen-container", Container)
        await container.remove_children()
        if name == "timeline":
            widget = TimelineFeed(id="timeline-feed")
        elif name == "friends":
            widget = FriendsPanel(id="friends-panel")
        elif name == "messages":
            widget = MessagesScreen(kwargs.get("peer_id"), id="messages-screen")
        else:
            widget = ProfilePanel(id="profile-panel")
        await container.mount(widget)
        self.current_view = name
        me = self.api.get_current_user()
        self.query_one("#app-header", Static).update(Text(f"instasocial [{name}] @{me.username}"))
        widget.focus()

    async def action_show_view(self, name: str) -> None:
        await self.show_view(name)

    def action_open_dm(self, peer_id: str) -> None:
        self.call_later(self.show_view, "messages", peer_id=peer_id)

    def action_new_post(self) -> None:
        if self.api.is_logged_in and not isinstance(self.focused, (Input, TextArea)):
            self.push_screen(NewPostDialog(), self._after_new_post)

    async def _after_new_post(self, posted) -> None:
        if posted:
            await self.show_view("timeline")

    async def action_logout(self) -> None:
        self.api.logout()
        await self.query_one("#screen-container", Container).remove_children()
        self.query_one("#app-header", Static).update("instasocial")
        self.push_screen(AuthScreen(), self._after_auth)

    async def action_quit(self) -> None:
        if self.api is not None:
            await self.api.aclose(timeout=FLUSH_TIMEOUT)
        self.exit()


def main():
    settings = load_settings()
    setup_logging(settings.debug)
    logger.debug("starting app")
    try:
        InstaSocialApp(settings=settings).run()
    except Exception:
        logger.exception("Exception occurred while running InstaSocialApp:")
        raise


if __name__ == "__main__":
    main()
