"""
Demo sequences run after a bot mention: first the high level features
(formatting, cards, media, glance), then every low level client call.
Each step replies in the conversation the mention came from.
"""
import asyncio
import json
import logging
import time

import httpx

from stride_refapp.services.documents import ApplicationCard, Document, find_mentions, text_doc
from stride_refapp.services.stride import StrideAPIError, StrideClient

logger = logging.getLogger("app.walkthrough")

DEMO_IMAGE_URL = "https://media.giphy.com/media/L12g7V0J62bf2/giphy.gif"
CARD_FOOTER_ICON = {"url": "https://image.ibb.co/fPPAB5/Stride_White_On_Blue.png", "label": "Stride"}
TASK_ICON = {
    "url": "https://ecosystem.atlassian.net/secure/viewavatar?size=xsmall&avatarId=15318&avatarType=issuetype",
    "label": "Task",
}
GLANCE_KEY = "refapp-glance"
UPDATE_MESSAGE_ACTION = {"key": "refapp-action-callService-updateMessage"}

# conversation creation installs the app asynchronously
CONVERSATION_SETTLE_SECONDS = 2


async def run_walkthrough(stride: StrideClient, payload: dict) -> None:
    """Background entry point for a bot mention."""
    request_id = payload.get("request_id")
    try:
        await show_case_high_level_features(stride, payload)
        await demo_low_level_functions(stride, payload)
        await stride.reply_with_text(payload, "OK, I'm done. Thanks for watching!")
        logger.info("walkthrough_completed", extra={"extra": {"request_id": request_id}})
    except Exception:
        logger.exception("walkthrough_failed", extra={"extra": {"request_id": request_id}})


def incident_card(title: str = "Incident #4253") -> tuple[Document, ApplicationCard]:
    doc = Document()
    card = (
        doc.application_card(title)
        .link("https://www.atlassian.com")
        .description("Something is broken")
    )
    return doc, card


def build_incident_update(incident_action: str | None) -> dict:
    """Incident card re-rendered after a user clicked one of its actions."""
    doc, card = incident_card()
    if incident_action == "ack":
        card.detail().title("Status").text("In progress")
        card.detail().title("Assigned to").text("Joe Blog")
        card.action().title("Resolve").target(UPDATE_MESSAGE_ACTION).parameters({"incidentAction": "resolve"})
    elif incident_action == "resolve":
        card.detail().title("Status").text("Resolved")
        card.action().title("Reopen").target(UPDATE_MESSAGE_ACTION).parameters({"incidentAction": "reopen"})
    elif incident_action == "reopen":
        card.detail().title("Status").text("Reopened")
        card.action().title("Ack").target(UPDATE_MESSAGE_ACTION).parameters({"incidentAction": "ack"})
        card.action().title("Resolve").target(UPDATE_MESSAGE_ACTION).parameters({"incidentAction": "resolve"})
    card.context("A footer").icon(CARD_FOOTER_ICON)
    return doc.to_json()


# ── High level features ─────────────────────────────────────────────────

async def show_case_high_level_features(stride: StrideClient, payload: dict) -> None:
    cloud_id = payload["cloudId"]
    conversation_id = payload["conversation"]["id"]
    sender_id = payload["sender"]["id"]

    await _convert_message_to_plain_text(stride, payload)
    await _extract_and_send_mentions(stride, payload)

    await stride.reply_with_text(payload, "Getting user details for the sender of the message...")
    user = await stride.get_user(cloud_id, sender_id)
    await stride.reply_with_text(payload, "This message was sent by: " + user["displayName"])

    await _send_message_with_formatting(stride, payload)
    await _send_message_with_image(stride, payload, cloud_id, conversation_id)
    await _send_message_with_action(stride, payload)
    await _send_message_that_updates(stride, payload)

    await stride.reply_with_text(payload, "Updating the glance state...")
    state_txt = f"Click me, {user['displayName']} !!"
    await stride.update_glance_state(cloud_id, conversation_id, GLANCE_KEY, state_txt)
    logger.info("glance_state_updated", extra={"extra": {"state": state_txt}})
    await stride.reply_with_text(payload, f'It should be updated to "{state_txt}" -->')


async def _convert_message_to_plain_text(stride: StrideClient, payload: dict) -> None:
    await stride.reply_with_text(payload, "Converting the message you just sent to plain text...")

    # message.text already holds a plain text rendering; the API can render any document
    logger.info("message_plain_text", extra={"extra": {"text": payload["message"].get("text")}})
    msg_in_text = await stride.convert_doc_to_text(payload["message"]["body"])

    doc = Document()
    doc.paragraph().text("In plain text, it looks like this: ").text(f'"{msg_in_text}"')
    await stride.reply(payload, doc.to_json())


async def _extract_and_send_mentions(stride: StrideClient, payload: dict) -> None:
    doc = Document()
    paragraph = doc.paragraph().text("The following people were mentioned: ")
    for node in find_mentions(payload):
        paragraph.mention(node["attrs"]["id"], node["attrs"].get("text", ""))
    await stride.reply(payload, doc.to_json())


async def _send_message_with_formatting(stride: StrideClient, payload: dict) -> None:
    await stride.reply_with_text(payload, "Sending a message with plenty of formatting...")

    doc = Document()
    (
        doc.paragraph()
        .text("Here is some ")
        .strong("bold test")
        .text(" and ")
        .em("text in italics")
        .text(" as well as ")
        .link(" a link", "https://www.atlassian.com")
        .text(" , emojis ")
        .emoji(":smile:")
        .emoji(":rofl:")
        .emoji(":nerd:")
        .text(" and some code: ")
        .code("i = 0")
        .text(" and a bullet list")
    )
    doc.bullet_list().text_item("With one bullet point").text_item("And another")
    doc.panel("info").paragraph().text("and an info panel with some text, with some more code below")
    doc.code_block("python").text("i = 0\nwhile True:\n    i += 1")

    doc.paragraph().text("And a card")
    card = (
        doc.application_card("With a title")
        .link("https://www.atlassian.com")
        .description("With some description, and a couple of attributes")
    )
    card.detail().title("Type").text("Task").icon(TASK_ICON)
    card.detail().title("User").text("Joe Blog").icon(TASK_ICON)

    await stride.reply(payload, doc.to_json())


async def _send_message_with_image(
    stride: StrideClient, payload: dict, cloud_id: str, conversation_id: str,
) -> None:
    await stride.reply_with_text(payload, "Uploading an image...")

    # files must be uploaded before a message can reference them
    async with httpx.AsyncClient(timeout=30, follow_redirects=True) as client:
        download = await client.get(DEMO_IMAGE_URL)
        download.raise_for_status()

    response = await stride.send_media(cloud_id, conversation_id, "an_image2.jpg", download.content)
    media_id = response["data"]["id"]
    doc = Document()
    doc.paragraph().text("and here's that image:")
    doc.media_group().media(id=media_id, collection=conversation_id)
    await stride.reply(payload, doc.to_json())


async def _send_message_with_action(stride: StrideClient, payload: dict) -> None:
    await stride.reply_with_text(payload, "Sending messages with actions...")

    doc = Document()
    card = (
        doc.application_card("Another card")
        .link("https://www.atlassian.com")
        .description("With some description, and a couple of actions")
    )
    card.action().title("Open Dialog").target({"key": "refapp-action-openDialog"})
    card.action().title("Call Service").target({"key": "refapp-action-callService"}).parameters(
        {"returnError": False, "then": "done"}
    )
    card.action().title("Call Service then open sidebar").target({"key": "refapp-action-callService"}).parameters(
        {"then": "open sidebar"}
    )
    card.action().title("Open Sidebar").target({"key": "refapp-action-openSidebar"})
    card.action().title("Show error").target({"key": "refapp-action-callService"}).parameters(
        {"returnError": True, "then": "done"}
    )
    card.context("A footer").icon(CARD_FOOTER_ICON)
    await stride.reply(payload, doc.to_json())

    # a text link that opens a dialog when clicked
    link_doc = {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [
                    {
                        "type": "text",
                        "text": "Click me to open a Dialog",
                        "marks": [
                            {
                                "type": "action",
                                "attrs": {
                                    "title": "open dialog",
                                    "target": {"key": "refapp-action-openDialog"},
                                    "parameters": {"expenseId": 123},
                                },
                            }
                        ],
                    }
                ],
            }
        ],
    }
    await stride.reply(payload, link_doc)


async def _send_message_that_updates(stride: StrideClient, payload: dict) -> None:
    await stride.reply_with_text(payload, "Sending a message that gets updated when you click its actions...")

    doc, card = incident_card()
    card.action().title("Ack").target(UPDATE_MESSAGE_ACTION).parameters({"incidentAction": "ack"})
    card.action().title("Resolve").target(UPDATE_MESSAGE_ACTION).parameters({"incidentAction": "resolve"})
    card.context("A footer").icon(CARD_FOOTER_ICON)
    await stride.reply(payload, doc.to_json())


# ── Low level functions ─────────────────────────────────────────────────

async def demo_low_level_functions(stride: StrideClient, payload: dict) -> None:
    cloud_id = payload["cloudId"]
    conversation_id = payload["conversation"]["id"]

    await stride.reply_with_text(payload, "That was nice, wasn't it?")
    await stride.reply_with_text(
        payload, 'Now let me walk you through the lower level functions available in the tutorial "refapp":',
    )

    logger.info("demo_step", extra={"extra": {"step": "send_text_message"}})
    await stride.send_text_message(cloud_id, conversation_id, "demo - sendTextMessage() - Hello, world!")

    logger.info("demo_step", extra={"extra": {"step": "send_message"}})
    await stride.send_message(cloud_id, conversation_id, text_doc("demo - sendMessage() - Hello, world!"))

    logger.info("demo_step", extra={"extra": {"step": "reply_with_text"}})
    await stride.reply_with_text(payload, "demo - replyWithText() - Hello, world!")

    logger.info("demo_step", extra={"extra": {"step": "reply"}})
    await stride.reply(payload, text_doc("demo - reply() - Hello, world!"))

    logger.info("demo_step", extra={"extra": {"step": "get_user"}})
    user = await stride.get_user(cloud_id, payload["sender"]["id"])
    await stride.reply_with_text(payload, f'demo - getUser() - your name is "{user["displayName"]}"')

    await _demo_send_private_message(stride, payload, cloud_id, user)

    logger.info("demo_step", extra={"extra": {"step": "get_conversation"}})
    conversation = await stride.get_conversation(cloud_id, conversation_id)
    await stride.reply_with_text(
        payload, f'demo - getConversation() - current conversation name is "{conversation["name"]}"',
    )

    created = await _demo_create_conversation(stride, payload, cloud_id)

    logger.info("demo_step", extra={"extra": {"step": "archive_conversation"}})
    await stride.archive_conversation(cloud_id, created["id"])
    await stride.reply_with_text(payload, f'demo - archiveConversation() - archived conversation "{created["name"]}"')

    logger.info("demo_step", extra={"extra": {"step": "get_conversation_history"}})
    history = await stride.get_conversation_history(cloud_id, conversation_id)
    await stride.reply_with_text(
        payload, f"demo - getConversationHistory() - seen {len(history['messages'])} recent message(s)",
    )

    logger.info("demo_step", extra={"extra": {"step": "get_conversation_roster"}})
    roster = await stride.get_conversation_roster(cloud_id, conversation_id)
    users = await asyncio.gather(*(stride.get_user(cloud_id, uid) for uid in roster["values"]))
    await stride.reply_with_text(
        payload,
        f"demo - getConversationRoster() - seen {len(users)} users: "
        + ", ".join(u["displayName"] for u in users),
    )

    logger.info("demo_step", extra={"extra": {"step": "create_doc_mentioning_user"}})
    document = await stride.create_doc_mentioning_user(
        cloud_id, user["id"], "demo - createDocMentioningUser() - See {{MENTION}}, I can do it!",
    )
    await stride.reply(payload, document)

    logger.info("demo_step", extra={"extra": {"step": "convert_doc_to_text"}})
    doc = Document()
    doc.paragraph().text("demo - convertDocToText() - this an ADF document with a link: ").link(
        "https://www.atlassian.com/", "https://www.atlassian.com/"
    )
    document = doc.to_json()
    await stride.reply(payload, document)
    text = await stride.convert_doc_to_text(document)
    await stride.reply_with_text(payload, f"{text} <-- converted to text!")

    logger.info("demo_step", extra={"extra": {"step": "convert_markdown_to_doc"}})
    markdown = (
        "Here's some **markdown**: Hello *world*, we hope you're enjoying "
        "[Stride](https://www.stride.com)"
    )
    document = await stride.convert_markdown_to_doc(markdown)
    await stride.reply_with_text(payload, "demo - convertMarkdownToDoc()")
    await stride.reply(payload, document)


async def _demo_send_private_message(stride: StrideClient, payload: dict, cloud_id: str, user: dict) -> None:
    logger.info("demo_step", extra={"extra": {"step": "send_private_message"}})
    await stride.reply_with_text(payload, "demo - sendPrivateMessage() - sending you a private message...")
    try:
        document = await stride.create_doc_mentioning_user(
            cloud_id, user["id"], "Hello {{MENTION}}, thanks for taking the Stride tutorial!",
        )
        await stride.send_private_message(cloud_id, user["id"], document)
    except StrideAPIError:
        logger.warning("demo_private_message_failed", exc_info=True)
        await stride.reply_with_text(
            payload, "Didn't work, but maybe you closed our private conversation? Try re-opening it... (please ;)",
        )


async def _demo_create_conversation(stride: StrideClient, payload: dict, cloud_id: str) -> dict:
    logger.info("demo_step", extra={"extra": {"step": "create_conversation"}})
    candidate_name = f"Stride-tutorial-Conversation-{int(time.time() * 1000)}"
    response = await stride.create_conversation(cloud_id, candidate_name)
    logger.info("demo_conversation_created", extra={"extra": {"response": json.dumps(response)}})

    # the new conversation is usable only once the platform has installed the app in it
    await asyncio.sleep(CONVERSATION_SETTLE_SECONDS)

    created = await stride.get_conversation(cloud_id, response["id"])
    await stride.send_text_message(cloud_id, created["id"], "demo - createConversation() - Hello, conversation!")

    doc = Document()
    doc.paragraph().text(
        f'demo - createConversation() - conversation created with name "{created["name"]}". Find it '
    ).link("here", created.get("_links", {}).get(created["id"], ""))
    await stride.reply(payload, doc.to_json())
    return created
