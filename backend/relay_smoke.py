import argparse
import json
import time
import textwrap

import requests

from config import settings
from lessons import load_catalog
from progress import TutorSession


# --- Configuration ---
HEADERS = {
    "Content-Type": "application/json",
}


class HttpRelayPublisher:
    """Blocking publisher that POSTs straight to the relay and records each outcome."""

    def __init__(self, base_url: str, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.results = []

    def _post(self, path: str, payload: dict):
        started = time.time()
        try:
            response = requests.post(f"{self.base_url}{path}", headers=HEADERS, data=json.dumps(payload), timeout=self.timeout)
            response.raise_for_status()
            outcome = {"path": path, "ok": True, "status": response.status_code}
        except requests.exceptions.RequestException as e:
            outcome = {"path": path, "ok": False, "error": str(e)}
        outcome["elapsed"] = time.time() - started
        self.results.append(outcome)
        return outcome

    def publish_slide(self, room_name, slide):
        outcome = self._post("/api/agent/slide-update", {"roomName": room_name, "slideData": slide.to_wire()})
        print(f"    -> slide '{slide.title}' ({slide.type.value}): {'OK' if outcome['ok'] else 'FAILED: ' + outcome['error']}")

    def publish_message(self, room_name, message, message_type="agent-speech"):
        self._post("/api/agent/message", {"roomName": room_name, "message": message, "type": message_type})


def run_lesson(lesson_key: str, room_name: str, pause: float):
    """
    Walks one lesson from start to completion against a running relay,
    printing what the tutor would say and a summary of every push.
    """
    publisher = HttpRelayPublisher(settings.WEB_INTERFACE_URL, settings.RELAY_TIMEOUT_SECONDS)
    tutor = TutorSession(load_catalog(settings.LESSON_CATALOG_PATH), room_name, publisher)

    steps = [lambda: tutor.start_lesson(lesson_key)]
    lesson = tutor.catalog.get(lesson_key)
    topic_count = len(lesson.topics) if lesson else 0
    steps += [tutor.next_topic for _ in range(topic_count)]

    for step in steps:
        text = step()
        tutor.say(text)
        print("\n" + "=" * 12 + " TUTOR " + "=" * 12)
        print(textwrap.fill(text, width=80, initial_indent="    ", subsequent_indent="    "))
        print("=" * 31 + "\n")
        time.sleep(pause)

    # --- Print Final Summary Table ---
    print("\n\n======================== RELAY SUMMARY ========================")
    print(f"{'Endpoint':<28} | {'Result':<8} | {'Time (s)':<8}")
    print("-" * 62)
    for res in publisher.results:
        result = "OK" if res["ok"] else "ERROR"
        print(f"{res['path']:<28} | {result:<8} | {res['elapsed']:<8.2f}")
    print("=" * 62 + "\n")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Push a scripted lesson to a running relay server.")
    parser.add_argument("lesson", nargs="?", default="eligibility")
    parser.add_argument("--room", default=settings.DEFAULT_ROOM_NAME)
    parser.add_argument("--pause", type=float, default=2.0)
    args = parser.parse_args()
    run_lesson(args.lesson, args.room, args.pause)
