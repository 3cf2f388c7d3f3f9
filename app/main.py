"""Local web surface for scheduled agent tasks."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from src.taskloom.runtime.service import get_runtime_service

app = FastAPI(title="Taskloom")


class CreateTaskRequest(BaseModel):
    name: str
    agent_id: str
    prompt_template: str
    # Validated by the scheduler so schedule errors come back in the standard envelope.
    schedule_type: dict[str, object] = Field(default_factory=dict)


class ToggleTaskRequest(BaseModel):
    enabled: bool


@app.on_event("startup")
def _init_runtime_client() -> None:
    # App is a client surface; scheduler ownership belongs to the daemon/runtime service.
    get_runtime_service().start(start_scheduler_if_enabled=False, source="app")


@app.get("/health")
def health() -> dict:
    return get_runtime_service().health()


@app.get("/api/scheduler/status")
def scheduler_status() -> dict:
    return get_runtime_service().scheduler_status()


@app.post("/api/scheduler/start")
def scheduler_start() -> dict:
    return get_runtime_service().scheduler_start()


@app.post("/api/scheduler/stop")
def scheduler_stop() -> dict:
    return get_runtime_service().scheduler_stop()


@app.get("/api/tasks")
def list_tasks() -> dict:
    return get_runtime_service().list_tasks()


@app.post("/api/tasks")
def create_task(req: CreateTaskRequest) -> dict:
    return get_runtime_service().create_task(
        name=req.name,
        agent_id=req.agent_id,
        prompt_template=req.prompt_template,
        schedule_type=req.schedule_type,
    )


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: str) -> dict:
    return get_runtime_service().delete_task(task_id=task_id)


@app.post("/api/tasks/{task_id}/toggle")
def toggle_task(task_id: str, req: ToggleTaskRequest) -> dict:
    return get_runtime_service().toggle_task(task_id=task_id, enabled=req.enabled)


@app.post("/api/tasks/{task_id}/run")
def run_task_now(task_id: str) -> dict:
    return get_runtime_service().run_task_now(task_id=task_id)


@app.get("/api/task-results")
def task_results(limit: int = 50) -> dict:
    return get_runtime_service().get_task_results(limit=limit)


@app.get("/api/agents")
def list_agents() -> dict:
    return get_runtime_service().list_agents()


@app.get("/api/backend/status")
def backend_status() -> dict:
    return get_runtime_service().check_backend()


@app.get("/api/backend/models")
def backend_models() -> dict:
    return get_runtime_service().list_backend_models()


@app.get("/", response_class=HTMLResponse)
def index() -> HTMLResponse:
    html = """<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Taskloom</title>
  <style>
    :root { --bg: #f6f1e8; --panel: #fffaf2; --ink: #1e2a24; --muted: #5c6d63; --accent: #0e8f73; --bad: #b42318; --line: #d8d2c7; }
    * { box-sizing: border-box; }
    body { margin: 0; padding: 20px; font-family: system-ui, sans-serif; color: var(--ink); background: var(--bg); }
    .app { width: min(1100px, 100%); margin: 0 auto; display: grid; grid-template-columns: 1.3fr 1fr; gap: 14px; }
    .panel { background: var(--panel); border: 1px solid var(--line); border-radius: 14px; padding: 14px; }
    h1 { font-size: 1.1rem; margin: 0 0 10px; }
    h2 { font-size: 0.95rem; margin: 0 0 8px; }
    form { display: grid; gap: 6px; margin-bottom: 12px; }
    input, select, textarea, button { font: inherit; padding: 6px 8px; border: 1px solid var(--line); border-radius: 8px; }
    button { cursor: pointer; background: #fff; }
    button.primary { background: var(--accent); color: #fff; border-color: var(--accent); }
    .row { display: flex; gap: 6px; flex-wrap: wrap; align-items: center; }
    .task, .result { border-top: 1px solid var(--line); padding: 8px 0; }
    .muted { color: var(--muted); font-size: 0.85rem; }
    .bad { color: var(--bad); }
    pre { white-space: pre-wrap; margin: 4px 0 0; font-size: 0.85rem; }
  </style>
</head>
<body>
  <div class="app">
    <div class="panel">
      <h1>Scheduled tasks</h1>
      <form id="create-form">
        <input id="name" placeholder="Task name" required>
        <select id="agent"></select>
        <textarea id="prompt" rows="3" placeholder="Prompt ({date}, {time}, {datetime})" required></textarea>
        <div class="row">
          <select id="stype">
            <option value="Interval">Interval</option>
            <option value="Hourly">Hourly</option>
            <option value="Daily">Daily</option>
            <option value="Weekly">Weekly</option>
          </select>
          <input id="minutes" type="number" min="1" value="60" title="Interval minutes" style="width:90px">
          <select id="day" title="Weekday">
            <option value="0">Sun</option><option value="1">Mon</option><option value="2">Tue</option>
            <option value="3">Wed</option><option value="4">Thu</option><option value="5">Fri</option><option value="6">Sat</option>
          </select>
          <input id="hour" type="number" min="0" max="23" value="9" title="Hour" style="width:70px">
          <input id="minute" type="number" min="0" max="59" value="0" title="Minute" style="width:70px">
          <button class="primary" type="submit">Create</button>
        </div>
        <div id="form-error" class="bad"></div>
      </form>
      <div id="tasks"></div>
    </div>
    <div class="panel">
      <h2>Recent results</h2>
      <div id="results"></div>
    </div>
  </div>
  <script>
    const DAYS = ['Sun', 'Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat'];
    const pad = (n) => String(n).padStart(2, '0');
    const esc = (s) => String(s ?? '').replace(/[&<>"]/g, (c) => ({'&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;'}[c]));
    const when = (iso) => iso ? new Date(iso).toLocaleString() : 'never';

    function describe(s) {
      if (s.type === 'Interval') return `Every ${s.minutes} min`;
      if (s.type === 'Hourly') return `Hourly at :${pad(s.at_minute)}`;
      if (s.type === 'Daily') return `Daily at ${pad(s.at_hour)}:${pad(s.at_minute)}`;
      if (s.type === 'Weekly') return `Weekly on ${DAYS[s.day]} at ${pad(s.at_hour)}:${pad(s.at_minute)}`;
      return 'Unknown';
    }

    function scheduleFromForm() {
      const type = document.getElementById('stype').value;
      const hour = Number(document.getElementById('hour').value);
      const minute = Number(document.getElementById('minute').value);
      if (type === 'Interval') return { type, minutes: Number(document.getElementById('minutes').value) };
      if (type === 'Hourly') return { type, at_minute: minute };
      if (type === 'Daily') return { type, at_hour: hour, at_minute: minute };
      return { type, day: Number(document.getElementById('day').value), at_hour: hour, at_minute: minute };
    }

    async function loadAgents() {
      const res = await fetch('/api/agents');
      const out = await res.json();
      const select = document.getElementById('agent');
      select.innerHTML = (out.data || []).map((a) => `<option value="${esc(a.id)}">${esc(a.name)}</option>`).join('');
    }

    async function loadTasks() {
      const res = await fetch('/api/tasks');
      const out = await res.json();
      const tasks = out.data || [];
      document.getElementById('tasks').innerHTML = tasks.length ? tasks.map((t) => `
        <div class="task">
          <div class="row"><strong>${esc(t.name)}</strong><span class="muted">${esc(t.agent_id)} · ${esc(describe(t.schedule_type))}</span></div>
          <div class="muted">next ${esc(when(t.next_run))} · last ${esc(when(t.last_run))} · runs ${t.run_count}</div>
          <div class="row">
            <button data-toggle="${esc(t.id)}" data-enabled="${t.enabled}">${t.enabled ? 'Disable' : 'Enable'}</button>
            <button data-run="${esc(t.id)}">Run now</button>
            <button data-delete="${esc(t.id)}">Delete</button>
          </div>
        </div>`).join('') : '<div class="muted">No tasks yet.</div>';
    }

    async function loadResults() {
      const res = await fetch('/api/task-results?limit=20');
      const out = await res.json();
      const results = out.data || [];
      document.getElementById('results').innerHTML = results.length ? results.map((r) => `
        <div class="result">
          <div class="row"><strong>${esc(r.task_name)}</strong><span class="muted">${esc(r.agent_name)} · ${esc(when(r.executed_at))}</span></div>
          ${r.success ? `<pre>${esc(r.response)}</pre>` : `<pre class="bad">${esc(r.error)}</pre>`}
        </div>`).join('') : '<div class="muted">No results yet.</div>';
    }

    document.getElementById('create-form').addEventListener('submit', async (ev) => {
      ev.preventDefault();
      const res = await fetch('/api/tasks', {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify({
          name: document.getElementById('name').value,
          agent_id: document.getElementById('agent').value,
          prompt_template: document.getElementById('prompt').value,
          schedule_type: scheduleFromForm(),
        }),
      });
      const out = await res.json();
      document.getElementById('form-error').textContent = out.success ? '' : (out.error || 'Failed to create task.');
      if (out.success) ev.target.reset();
      await loadTasks();
    });

    document.getElementById('tasks').addEventListener('click', async (ev) => {
      const btn = ev.target.closest('button');
      if (!btn) return;
      if (btn.dataset.toggle) {
        await fetch(`/api/tasks/${encodeURIComponent(btn.dataset.toggle)}/toggle`, {
          method: 'POST',
          headers: { 'Content-Type': 'application/json' },
          body: JSON.stringify({ enabled: btn.dataset.enabled !== 'true' }),
        });
      } else if (btn.dataset.run) {
        await fetch(`/api/tasks/${encodeURIComponent(btn.dataset.run)}/run`, { method: 'POST' });
      } else if (btn.dataset.delete) {
        await fetch(`/api/tasks/${encodeURIComponent(btn.dataset.delete)}`, { method: 'DELETE' });
      }
      await loadTasks();
    });

    loadAgents();
    loadTasks();
    loadResults();
    // Read-only refresh; the scheduler's own timer drives execution.
    setInterval(() => { loadTasks(); loadResults(); }, 10000);
  </script>
</body>
</html>
"""
    return HTMLResponse(content=html)
