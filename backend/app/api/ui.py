"""Login gate and the two UI pages.

POST /login  {key} — sets the signed, HTTP-only session cookie
GET  /           — login page
GET  /chatbot    — chat page (redirects to / without a valid session)
"""
import html
import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from api.deps import read_json_object
from config import settings
from core.auth import (
    COOKIE_NAME,
    AuthDecision,
    authorize,
    has_valid_session,
    require,
    session_cookie_value,
)
from core.errors import MalformedRequest

router = APIRouter(tags=["ui"])
logger = logging.getLogger("grokchat.api.ui")


@router.post("/login")
async def login(request: Request):
    try:
        body = await read_json_object(request)
    except MalformedRequest:
        body = {}
    key = body.get("key")

    decision = authorize(key if isinstance(key, str) else None, settings.ADMIN_KEY)
    if decision is AuthDecision.NOT_CONFIGURED:
        require(decision, "ADMIN_KEY")
    if decision is not AuthDecision.GRANTED:
        logger.info("Login rejected (%s)", decision.value)
        return JSONResponse({"error": "Invalid key"}, status_code=401)

    res = JSONResponse({"message": "Login successful"})
    res.set_cookie(
        COOKIE_NAME,
        session_cookie_value(settings.ADMIN_KEY),
        httponly=True,
        samesite="strict",
        path="/",
        secure=settings.COOKIE_SECURE,
    )
    logger.info("Login successful")
    return res


@router.get("/", response_class=HTMLResponse)
def login_page():
    return LOGIN_HTML


@router.get("/chatbot", response_class=HTMLResponse)
def chatbot_page(request: Request):
    if settings.UI_REQUIRE_LOGIN and not has_valid_session(request):
        return RedirectResponse("/", status_code=303)
    return render_chat_page()


def render_chat_page() -> str:
    options = "".join(
        f'<option{" selected" if m == settings.DEFAULT_MODEL else ""}>{html.escape(m)}</option>'
        for m in settings.ALLOWED_MODELS
    )
    # embedded in <script>, so "</" must not close the tag
    default_prompt = json.dumps(settings.DEFAULT_SYSTEM_PROMPT).replace("</", "<\\/")
    return (
        CHAT_HTML
        .replace("__MODEL_OPTIONS__", options)
        .replace("__DEFAULT_PROMPT__", default_prompt)
    )


LOGIN_HTML = """<!doctype html>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width,initial-scale=1" />
<title>Admin Login</title>
<style>
  body{margin:0;min-height:100vh;display:flex;align-items:center;justify-content:center;background:#f9fafb;font:16px/1.4 system-ui,-apple-system,Segoe UI,Roboto}
  form{width:100%;max-width:380px} h2{text-align:center} p{text-align:center;color:#6b7280;font-size:14px}
  input,button{width:100%;padding:10px;border-radius:6px;border:1px solid #d1d5db;box-sizing:border-box;margin-top:8px}
  button{background:#4f46e5;color:#fff;border:0;cursor:pointer} button:disabled{opacity:.5}
</style>
<form id="login">
  <h2>Admin Login</h2>
  <p>Enter your access key to continue</p>
  <input id="key" type="password" placeholder="Enter access key" required />
  <button id="btn" type="submit" disabled>Login</button>
</form>
<script>
const key = document.querySelector('#key'), btn = document.querySelector('#btn');
key.oninput = () => { btn.disabled = !key.value.trim(); };
document.querySelector('#login').onsubmit = async (e) => {
  e.preventDefault();
  const res = await fetch('/login', {method:'POST', headers:{'Content-Type':'application/json'},
                                     body: JSON.stringify({key: key.value})});
  if (res.ok) location.href = '/chatbot'; else alert('Login failed');
};
</script>
"""

CHAT_HTML = r"""<!doctype html>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width,initial-scale=1" />
<title>Chatbot</title>
<style>
  body{margin:0;background:#040404;color:#e5e7eb;font:15px/1.5 system-ui,-apple-system,Segoe UI,Roboto}
  .wrap{display:flex;height:100vh} .col{flex:1;display:flex;flex-direction:column;padding:16px;min-width:0}
  .col:first-child{border-right:1px solid #1f2937}
  .bar{display:flex;gap:8px;align-items:center;justify-content:space-between}
  textarea,input,select,button,label.btn{background:#0f141b;color:inherit;border:1px solid #374151;border-radius:8px;padding:8px;font:inherit}
  textarea{flex:1;resize:none} button,label.btn{cursor:pointer} button:disabled{opacity:.4;cursor:not-allowed}
  #save.unsaved{background:#eab308;color:#000} #saved{color:#22c55e;font-size:12px;visibility:hidden}
  .msgs{flex:1;overflow:auto;padding:8px 0} .empty{text-align:center;color:#9ca3af;margin-top:30%}
  .user{display:flex;justify-content:flex-end;margin:8px 0}
  .user>div{max-width:85%;background:#111827;border-radius:8px;padding:8px;white-space:pre-wrap}
  .reply{max-width:85%;margin:8px 0} .slide{display:flex;align-items:center;gap:6px}
  .slide .body{flex:1;border:1px solid #e5e7eb;border-radius:8px;padding:8px;white-space:pre-wrap}
  .nav{border-radius:999px;padding:2px 8px} .count{text-align:center;font-size:12px;color:#9ca3af}
  .actions{display:flex;gap:6px;margin-top:4px} .actions button{font-size:12px;padding:4px 8px}
  .regen{background:#7c3aed} img.att{max-width:100%;max-height:300px;border-radius:6px;display:block;margin-top:6px}
  .dots::after{content:'...';animation:blink 1s infinite} @keyframes blink{50%{opacity:.2}}
  .err{background:#7f1d1d;padding:8px;border-radius:8px;display:none;justify-content:space-between;gap:8px}
  .previews{display:flex;gap:6px;flex-wrap:wrap;margin-bottom:6px} .previews div{position:relative}
  .previews img{width:64px;height:64px;object-fit:cover;border-radius:6px}
  .previews button{position:absolute;top:-6px;right:-6px;padding:0 6px;background:#ef4444;border:0;border-radius:999px}
  form{display:flex;gap:8px} form input[type=text]{flex:1}
</style>
<div class="wrap">
  <div class="col">
    <div class="bar"><h3>System prompt</h3><span id="saved">&#10003; Saved</span></div>
    <textarea id="prompt" placeholder="Enter your system prompt here..."></textarea>
    <button id="save">Save Prompt</button>
  </div>
  <div class="col">
    <div class="bar">
      <h3>Chat</h3>
      <input id="secret" type="password" placeholder="Chat secret key" />
      <select id="model">__MODEL_OPTIONS__</select>
    </div>
    <div id="error" class="err"><span id="error-text"></span><button id="dismiss" title="Dismiss error">&#10005;</button></div>
    <div id="msgs" class="msgs"></div>
    <div id="previews" class="previews"></div>
    <form id="composer">
      <input id="image-upload" type="file" accept="image/*" multiple hidden />
      <label for="image-upload" class="btn" title="Upload images">&#128247;</label>
      <input id="input" type="text" placeholder="Type a message..." />
      <button id="send" type="submit">Send</button>
    </form>
  </div>
</div>
<script>
const $ = s => document.querySelector(s);
const el = (tag, cls, text) => { const e = document.createElement(tag); if (cls) e.className = cls; if (text !== undefined) e.textContent = text; return e; };
const DEFAULT_PROMPT = __DEFAULT_PROMPT__;
const SUPPORTED_IMAGE_TYPES = ['image/jpeg', 'image/jpg', 'image/png', 'image/gif', 'image/webp', 'image/svg+xml'];
const MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024;

let messages = [], status = 'ready', images = [], savedPrompt = '';
const sliders = {};
let lastSeenId = '', settledId = '';

// ---- system prompt ----
function setPrompt(text) { $('#prompt').value = text; savedPrompt = text; promptChanged(); }
function promptChanged() { $('#save').classList.toggle('unsaved', $('#prompt').value !== savedPrompt); }
$('#prompt').oninput = promptChanged;
fetch('/prompt').then(r => r.ok ? r.json() : {}).then(d => setPrompt(d.prompt || DEFAULT_PROMPT))
  .catch(() => setPrompt(DEFAULT_PROMPT));
$('#save').onclick = async () => {
  const btn = $('#save'), text = $('#prompt').value;
  btn.disabled = true; btn.textContent = 'Saving...';
  try {
    const res = await fetch('/prompt', {method: 'POST', headers: {'Content-Type': 'application/json'},
                                        body: JSON.stringify({prompt: text})});
    if (res.ok) {
      savedPrompt = text; promptChanged();
      $('#saved').style.visibility = 'visible';
      setTimeout(() => { $('#saved').style.visibility = 'hidden'; }, 2000);
    } else console.error('Failed to save prompt');
  } catch (e) { console.error('Error saving prompt:', e); }
  finally { btn.disabled = false; btn.textContent = 'Save Prompt'; }
};

// ---- error banner ----
function showError(text) { $('#error-text').textContent = text; $('#error').style.display = 'flex'; }
function clearError() { $('#error').style.display = 'none'; }
$('#dismiss').onclick = clearError;

// ---- grouping: one user turn plus every response generated for it ----
const partKey = p => p.type === 'text' ? p.text : (p.type === 'file' ? (p.url || '') : '');
const promptKey = m => m.parts.map(partKey).join('|');
const clamp = (i, size) => Math.max(0, Math.min(i, size - 1));

function groupMessages() {
  const groups = [], claimed = new Set(), n = messages.length;
  for (let i = 0; i < n; i++) {
    const message = messages[i];
    if (claimed.has(i) || message.role !== 'user') continue;
    const key = promptKey(message), assistants = [];
    let j = i + 1;
    while (j < n && messages[j].role === 'assistant') { assistants.push(messages[j]); claimed.add(j); j++; }
    while (j < n && !claimed.has(j) && messages[j].role === 'user' && promptKey(messages[j]) === key) {
      claimed.add(j); j++;
      while (j < n && messages[j].role === 'assistant') { assistants.push(messages[j]); claimed.add(j); j++; }
    }
    if (!assistants.length) continue;
    claimed.add(i);
    const stored = message.id in sliders ? sliders[message.id] : assistants.length - 1;
    groups.push({id: message.id, user: message, assistants, active: clamp(stored, assistants.length)});
  }
  groups.claimed = claimed;
  return groups;
}

// Show the newest response of the latest group when it appears and once more when it settles
function followLatest(groups) {
  const last = messages[messages.length - 1];
  if (!last || last.role !== 'assistant' || !groups.length) return;
  const isNew = last.id !== lastSeenId, isComplete = status === 'ready' && last.id !== settledId;
  if (!isNew && !isComplete) return;
  if (isNew) lastSeenId = last.id;
  if (isComplete) settledId = last.id;
  const group = groups[groups.length - 1];
  if (!group.assistants.some(m => m.id === last.id)) return;
  group.active = group.assistants.length - 1;
  sliders[group.id] = group.active;
}

function setSlider(group, index) { sliders[group.id] = clamp(index, group.assistants.length); render(); }

// ---- rendering ----
function renderParts(target, parts) {
  for (const p of parts) {
    if (p.type === 'text') target.append(el('span', '', p.text));
    else if (p.type === 'file' && (p.mediaType || '').startsWith('image/')) {
      const img = el('img', 'att'); img.src = p.url; img.alt = p.filename || 'Uploaded image'; target.append(img);
    }
  }
}

function render() {
  const box = $('#msgs'), groups = groupMessages();
  followLatest(groups);
  box.innerHTML = '';
  if (!messages.length) {
    box.append(el('div', 'empty', 'Start a conversation'));
  }
  const lastId = messages.length ? messages[messages.length - 1].id : '';
  for (const group of groups) {
    const bubble = el('div'); renderParts(bubble, group.user.parts);
    const user = el('div', 'user'); user.append(bubble); box.append(user);

    const current = group.assistants[group.active], total = group.assistants.length;
    const text = current.parts.filter(p => p.type === 'text').map(p => p.text).join('');
    const streaming = status !== 'ready' && current.id === lastId;
    const reply = el('div', 'reply'), slide = el('div', 'slide'), body = el('div', 'body');
    renderParts(body, current.parts);
    if (streaming) body.append(el('span', 'dots'));
    if (total > 1) {
      const prev = el('button', 'nav', '<'), next = el('button', 'nav', '>');
      prev.title = 'Previous response'; next.title = 'Next response';
      prev.disabled = group.active === 0; next.disabled = group.active === total - 1;
      prev.onclick = () => setSlider(group, group.active - 1);
      next.onclick = () => setSlider(group, group.active + 1);
      slide.append(prev, body, next);
    } else slide.append(body);
    reply.append(slide);
    if (total > 1) reply.append(el('div', 'count', (group.active + 1) + '/' + total));
    if (text) {
      const actions = el('div', 'actions'), copy = el('button', '', 'Copy'), regen = el('button', 'regen', 'Regenerate');
      copy.onclick = () => navigator.clipboard.writeText(text).catch(e => console.error('Failed to copy text:', e));
      regen.disabled = status !== 'ready';
      regen.onclick = () => regenerate(current.id);
      actions.append(copy, regen); reply.append(actions);
    }
    box.append(reply);
  }
  const pending = messages[messages.length - 1];
  if (pending && pending.role === 'user' && status !== 'ready' && !groups.claimed.has(messages.length - 1)) {
    const bubble = el('div'); renderParts(bubble, pending.parts);
    const user = el('div', 'user'); user.append(bubble);
    box.append(user, el('div', 'reply dots'));
  }
  $('#send').disabled = status !== 'ready';
  box.scrollTop = box.scrollHeight;
}

// ---- attachments ----
function renderPreviews() {
  const box = $('#previews'); box.innerHTML = '';
  images.forEach((image, index) => {
    const wrap = el('div'), img = el('img'), remove = el('button', '', 'x');
    img.src = image.url; img.alt = 'Preview ' + (index + 1);
    remove.type = 'button'; remove.setAttribute('aria-label', 'Remove image');
    remove.onclick = () => { images.splice(index, 1); renderPreviews(); };
    wrap.append(img, remove); box.append(wrap);
  });
}

$('#image-upload').onchange = (e) => {
  for (const file of Array.from(e.target.files || [])) {
    if (!file.type.startsWith('image/')) {
      showError('Unsupported file type: ' + file.name + '. Please upload an image file (JPEG, PNG, GIF, WebP, or SVG).'); continue;
    }
    if (!SUPPORTED_IMAGE_TYPES.includes(file.type)) {
      showError('Unsupported image format: ' + file.name + '. Supported formats: JPEG, PNG, GIF, WebP, SVG.'); continue;
    }
    if (file.size > MAX_ATTACHMENT_SIZE) {
      showError('File too large: ' + file.name + '. Maximum file size is 10MB.'); continue;
    }
    const reader = new FileReader();
    reader.onload = () => {
      images.push({type: 'file', mediaType: file.type, url: reader.result, filename: file.name});
      renderPreviews(); clearError();
    };
    reader.onerror = () => showError('Failed to read file: ' + file.name + '. Please try again.');
    reader.readAsDataURL(file);
  }
  e.target.value = '';
};

// ---- sending ----
async function send(parts) {
  if (status !== 'ready') return;
  messages.push({id: crypto.randomUUID(), role: 'user', parts});
  status = 'submitted'; render();
  const headers = {'Content-Type': 'application/json'}, secret = $('#secret').value;
  if (secret) headers['Authorization'] = 'Bearer ' + secret;
  try {
    const res = await fetch('/chat', {method: 'POST', headers,
      body: JSON.stringify({messages, system: $('#prompt').value, model: $('#model').value})});
    if (!res.ok) { const d = await res.json().catch(() => ({})); showError(d.error || ('HTTP ' + res.status)); return; }
    const reader = res.body.getReader(), dec = new TextDecoder();
    let buf = '', msg = null;
    for (;;) {
      const {value, done} = await reader.read(); if (done) break;
      buf += dec.decode(value, {stream: true});
      let i;
      while ((i = buf.indexOf('\n\n')) >= 0) {
        const line = buf.slice(0, i).replace(/^data: ?/, ''); buf = buf.slice(i + 2);
        if (!line || line === '[DONE]') continue;
        let ev; try { ev = JSON.parse(line); } catch (e) { continue; }
        if (ev.type === 'start') {
          msg = {id: ev.messageId || crypto.randomUUID(), role: 'assistant', parts: [{type: 'text', text: ''}]};
          messages.push(msg); status = 'streaming'; render();
        } else if (ev.type === 'text-delta' && msg) { msg.parts[0].text += ev.delta || ''; render(); }
        else if (ev.type === 'error') showError(ev.errorText || 'An error occurred');
      }
    }
  } catch (e) { showError('Connection error: ' + e); }
  finally { status = 'ready'; render(); }
}

function regenerate(assistantId) {
  const group = groupMessages().find(g => g.assistants.some(m => m.id === assistantId));
  if (!group) return;
  clearError();
  send(group.user.parts.map(p => ({...p})));
}

$('#composer').onsubmit = (e) => {
  e.preventDefault();
  const text = $('#input').value;
  if ((!text.trim() && !images.length) || status !== 'ready') return;
  clearError();
  const parts = [];
  if (text.trim()) parts.push({type: 'text', text});
  parts.push(...images);
  $('#input').value = ''; images = []; renderPreviews();
  send(parts);
};

render();
</script>
"""
