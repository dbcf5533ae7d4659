#!/usr/bin/env python3
"""Web viewer for sliding context entries - accessible in browser."""

from __future__ import annotations

from flask import Flask, render_template_string, request

from config import Config
from formatting import format_time_ago, session_label
from i18n import t
from store import ContextStore
from utils import now_ms

app = Flask(__name__)
ITEMS_PER_PAGE = 10

_store: ContextStore | None = None


def get_store() -> ContextStore:
    global _store
    if _store is None:
        config = Config()
        _store = ContextStore(config.db_path, config.embedding_dim, config.table_name)
    return _store


def get_entries(store: ContextStore) -> list[dict]:
    """All entries as template rows, newest first."""
    strings = t(Config().locale)
    now = now_ms()
    rows = []
    for entry in sorted(store.scan(), key=lambda e: e.timestamp, reverse=True):
        rows.append(
            {
                "id": entry.id,
                "summary": entry.summary,
                "session_type": entry.session_type,
                "label": session_label(entry.session_type, strings),
                "session_key": entry.session_key,
                "time_ago": format_time_ago(entry.timestamp, now, strings),
                "topics": entry.topics,
                "has_tool_calls": entry.has_tool_calls,
                "has_decision": entry.has_decision,
            }
        )
    return rows


def get_page_links(current: int, total: int) -> list:
    """Pagination links with "..." for gaps."""
    if total <= 7:
        return list(range(1, total + 1))

    links = []
    for p in range(1, total + 1):
        if p <= 2 or p >= total - 1 or abs(p - current) <= 1:
            links.append(p)
        elif links[-1] != "...":
            links.append("...")
    return links


HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>Sliding Context</title>
    <style>
        body { font-family: system-ui; max-width: 900px; margin: 0 auto; padding: 20px; background: #1a1a2e; color: #eee; }
        h1 { color: #00d9ff; }
        .header { display: flex; justify-content: space-between; align-items: center; margin-bottom: 20px; flex-wrap: wrap; gap: 10px; }
        .pagination { display: flex; gap: 6px; align-items: center; flex-wrap: wrap; }
        .pagination a, .pagination span { padding: 6px 12px; background: #0f3460; color: #00d9ff; text-decoration: none; border-radius: 5px; display: inline-block; }
        .pagination span.current { background: #00d9ff; color: #1a1a2e; font-weight: bold; }
        .pagination span.ellipsis { color: #888; background: transparent; }
        .pagination a.disabled { color: #666; pointer-events: none; }
        .entry { background: #16213e; padding: 15px; margin: 10px 0; border-radius: 8px; border-left: 4px solid #00d9ff; }
        .label { display: inline-block; padding: 2px 8px; border-radius: 4px; font-size: 12px; font-weight: bold; background: #0f3460; }
        .dm { background: #2ecc71; }
        .group { background: #4a90d9; }
        .cron { background: #f39c12; }
        .heartbeat { background: #9b59b6; }
        .flag { color: #f39c12; font-size: 12px; margin-left: 6px; }
        .topic { background: #0f3460; padding: 2px 6px; border-radius: 3px; font-size: 11px; margin-right: 5px; }
        .meta { color: #888; font-size: 12px; margin-top: 8px; }
        input { padding: 10px; width: 100%; border-radius: 5px; border: none; background: #0f3460; color: #fff; margin-bottom: 20px; }
    </style>
</head>
<body>
    <div class="header">
        <h1>Sliding Context</h1>
        <div class="pagination">
            {% if page > 1 %}<a href="/?page={{ page-1 }}">← Prev</a>{% else %}<a class="disabled">← Prev</a>{% endif %}
            {% for p in page_links %}
            {% if p == "..." %}<span class="ellipsis">...</span>
            {% elif p == page %}<span class="current">{{ p }}</span>
            {% else %}<a href="/?page={{ p }}">{{ p }}</a>{% endif %}
            {% endfor %}
            {% if page < total_pages %}<a href="/?page={{ page+1 }}">Next →</a>{% else %}<a class="disabled">Next →</a>{% endif %}
        </div>
    </div>
    <p>{{ total_entries }} entries in window</p>
    <input type="text" id="search" placeholder="Filter entries..." onkeyup="filterEntries()">
    <div id="entries">
        {% for e in entries %}
        <div class="entry" data-content="{{ e.summary|lower }}">
            <span class="label {{ e.session_type }}">{{ e.label }}</span>
            {% if e.has_decision %}<span class="flag">decision</span>{% endif %}
            {% if e.has_tool_calls %}<span class="flag">tools</span>{% endif %}
            <p>{{ e.summary }}</p>
            <div>{% for topic in e.topics %}<span class="topic">{{ topic }}</span>{% endfor %}</div>
            <div class="meta">{{ e.time_ago }} | {{ e.session_key }} | {{ e.id[:8] }}</div>
        </div>
        {% endfor %}
    </div>
    <script>
        function filterEntries() {
            const q = document.getElementById('search').value.toLowerCase();
            document.querySelectorAll('.entry').forEach(el => {
                el.style.display = el.dataset.content.includes(q) ? 'block' : 'none';
            });
        }
    </script>
</body>
</html>
"""


@app.route("/")
def index():
    all_entries = get_entries(get_store())
    total = len(all_entries)
    total_pages = max(1, (total + ITEMS_PER_PAGE - 1) // ITEMS_PER_PAGE)
    page = min(max(request.args.get("page", 1, type=int), 1), total_pages)
    start = (page - 1) * ITEMS_PER_PAGE

    return render_template_string(
        HTML,
        entries=all_entries[start : start + ITEMS_PER_PAGE],
        page=page,
        total_pages=total_pages,
        total_entries=total,
        page_links=get_page_links(page, total_pages),
    )


if __name__ == "__main__":
    print("Open http://localhost:5000 in your browser")
    app.run(port=5000)
