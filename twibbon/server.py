#!/usr/bin/env python3
"""
Twibbon Profile Frame Server
4-Step Workflow: Choose Team → Upload → Crop & Preview → Download
"""

import io, math, uuid, logging, threading
from collections import OrderedDict
from urllib.parse import urlsplit

import click
from flask import Flask, request, jsonify, send_file, render_template_string, redirect, g
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, BadRequest

from twibbon.compositor import (CropSession, CropRegion, BackgroundMode, SessionState,
                                DecodeError, RenderError, SessionError)
from twibbon.config import Settings, EXCLUDED_PREFIXES, CLIENT_COOKIE, LANDING_PATHS
from twibbon.delivery import delivery_methods, download_filename
from twibbon.frames import FrameLibrary, generate_frames, REFERENCE_SIZE
from twibbon.preferences import MemoryPreferenceStore, should_show_webview_dialog, dismiss_webview_dialog
from twibbon.redirect_policy import PassThrough, Redirect, decide, handoff_urls, mark_routed
from twibbon.teams import load_campaign
from twibbon.useragent import DeviceType, ReportedEnvironment, classify, webview_marker

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MAX_SESSIONS = 200


class SessionNotFound(LookupError):
    pass


class SessionRegistry:
    """In-memory wizard sessions; the oldest is dropped past ``limit``."""

    def __init__(self, limit=MAX_SESSIONS):
        self.limit = limit
        self._sessions = OrderedDict()
        self._lock = threading.Lock()

    def add(self, session):
        sid = str(uuid.uuid4())
        with self._lock:
            self._sessions[sid] = session
            while len(self._sessions) > self.limit:
                old_sid, old = self._sessions.popitem(last=False)
                old.reset()
                logger.info(f"🧹 Evicted session {old_sid}")
        return sid

    def get(self, sid):
        with self._lock:
            session = self._sessions.get(sid)
        if session is None:
            raise SessionNotFound(sid)
        return session

    def drop(self, sid):
        with self._lock:
            session = self._sessions.pop(sid, None)
        if session is None:
            raise SessionNotFound(sid)
        session.reset()

    def __len__(self):
        return len(self._sessions)


def is_excluded(path):
    return path.lstrip('/').startswith(EXCLUDED_PREFIXES)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("Expected a JSON object")
    return data


def _object(data, key):
    value = data.get(key)
    if not isinstance(value, dict):
        raise BadRequest(f"'{key}' must be an object")
    return value


def _number(data, key):
    value = data.get(key)
    if isinstance(value, bool):
        raise BadRequest(f"'{key}' must be a number")
    try:
        value = float(value)
    except (TypeError, ValueError, OverflowError):
        raise BadRequest(f"'{key}' must be a number") from None
    if not math.isfinite(value):
        raise BadRequest(f"'{key}' must be a finite number")
    return value


def _display_size(data):
    if data.get('display_width') in (None, '') and data.get('display_height') in (None, ''):
        return None
    w, h = _number(data, 'display_width'), _number(data, 'display_height')
    if w <= 0 or h <= 0:
        raise BadRequest("Display size must be positive")
    return w, h


def _image_file():
    if 'image' not in request.files:
        raise BadRequest("No image")
    file = request.files['image']
    if file.filename == '':
        raise BadRequest("No file")
    if not (file.mimetype or '').startswith('image/'):
        raise BadRequest("Only image files are accepted")
    return file.read()


def create_app(settings=None, preferences=None):
    settings = settings or Settings.from_env()
    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.config['MAX_CONTENT_LENGTH'] = settings.max_content_length
    CORS(app)

    campaign = load_campaign(settings.teams_file)
    frames = FrameLibrary(settings.frames_dir, cached_sizes=(settings.preview_size, settings.export_size))
    sessions = SessionRegistry()
    prefs = preferences or MemoryPreferenceStore()
    app.extensions['twibbon'] = {'settings': settings, 'campaign': campaign, 'frames': frames,
                                 'sessions': sessions, 'preferences': prefs}

    def client_prefs():
        if 'client_id' not in g:
            g.client_id = request.cookies.get(CLIENT_COOKIE) or str(uuid.uuid4())
        return prefs.for_client(g.client_id)

    def in_app_context(data=None):
        ua = request.headers.get('User-Agent', '')
        caps = data.get('capabilities') if isinstance(data, dict) else None
        caps = caps if isinstance(caps, list) else []
        marker = webview_marker(ua, ReportedEnvironment(caps))
        return classify(ua).is_in_app_browser or marker is not None, marker

    def team_or_400(team_id):
        team = campaign.team(team_id)
        if team is None:
            raise BadRequest(f"Unknown team: {team_id}")
        return team

    def preview_payload(sid, session, result):
        return {'success': True, 'session_id': sid, 'session': session.to_dict(),
                'revision': result.revision, 'preview': result.data_uri()}

    # =========================================================================
    # Request hook: in-app browser routing
    # =========================================================================
    @app.before_request
    def route_in_app_browsers():
        if is_excluded(request.path):
            return None
        classification = classify(request.headers.get('User-Agent'))
        decision = decide(request.url, classification, settings.redirect_status)
        g.decision = decision
        if isinstance(decision, Redirect):
            return redirect(decision.location, code=decision.status)
        return None

    @app.after_request
    def attach_headers(response):
        decision = g.get('decision')
        if isinstance(decision, PassThrough):
            response.headers.update(decision.headers)
        if 'client_id' in g and request.cookies.get(CLIENT_COOKIE) != g.client_id:
            response.set_cookie(CLIENT_COOKIE, g.client_id, max_age=365 * 24 * 3600, samesite='Lax')
        return response

    # =========================================================================
    # Pages
    # =========================================================================
    @app.route('/')
    def index():
        return render_template_string(HTML_TEMPLATE, campaign=campaign,
                                      teams=[t.to_dict() for t in campaign.teams])

    def landing(device, browser):
        target = request.args.get('target', '')
        try:
            parts = urlsplit(target)
        except ValueError:
            parts = None
        # Only same-origin targets; anything else goes back to the home page
        if parts is None or parts.scheme not in ('http', 'https') or parts.netloc != request.host:
            target = request.host_url
        return render_template_string(LANDING_TEMPLATE, browser=browser, target=target,
                                      continue_url=mark_routed(target),
                                      handoff=handoff_urls(mark_routed(target), device))

    @app.route(LANDING_PATHS['ios'])
    def redirect_to_safari():
        return landing(DeviceType.IOS, 'Safari')

    @app.route(LANDING_PATHS['android'])
    def redirect_to_chrome():
        return landing(DeviceType.ANDROID, 'Chrome')

    # =========================================================================
    # API
    # =========================================================================
    @app.route('/api/teams')
    def list_teams():
        return jsonify({'campaign': {'title': campaign.title, 'subtitle': campaign.subtitle,
                                     'year': campaign.year, 'footer': campaign.footer},
                        'teams': [t.to_dict() for t in campaign.teams]})

    @app.route('/api/frames/<team_id>.png')
    def frame_image(team_id):
        team = campaign.team(team_id)
        if team is None:
            return jsonify({'error': 'Unknown team'}), 404
        size = request.args.get('size', REFERENCE_SIZE, type=int)
        if not 16 <= size <= settings.export_size:
            return jsonify({'error': 'Invalid size'}), 400
        frame = frames.frame_for(team, size)
        try:
            out = io.BytesIO()
            frame.save(out, format='PNG')
        finally:
            frame.close()
        out.seek(0)
        return send_file(out, mimetype='image/png', max_age=3600)

    @app.route('/api/sessions', methods=['POST'])
    def create_session():
        team = team_or_400(request.form.get('team', ''))
        data = _image_file()
        display = _display_size(request.form)
        session = CropSession(team, frames, settings.preview_size, settings.export_size,
                              BackgroundMode(settings.background))
        session.load(data, display)
        sid = sessions.add(session)
        logger.info(f"✅ Uploaded: {session.native_size[0]}x{session.native_size[1]} for {team.id}, session: {sid}")
        return jsonify(preview_payload(sid, session, session.render_preview())), 201

    @app.route('/api/sessions/<sid>')
    def get_session(sid):
        return jsonify({'success': True, 'session_id': sid, 'session': sessions.get(sid).to_dict()})

    @app.route('/api/sessions/<sid>', methods=['DELETE'])
    def delete_session(sid):
        sessions.drop(sid)
        return jsonify({'success': True})

    @app.route('/api/sessions/<sid>/upload', methods=['POST'])
    def reupload(sid):
        session = sessions.get(sid)
        session.load(_image_file(), _display_size(request.form))
        return jsonify(preview_payload(sid, session, session.render_preview()))

    @app.route('/api/sessions/<sid>/region', methods=['POST'])
    def set_region(sid):
        session = sessions.get(sid)
        data = _json_body()
        if data.get('display'):
            display = _object(data, 'display')
            session.set_display_size((_number(display, 'width'), _number(display, 'height')))
        if 'region' in data:
            r = _object(data, 'region')
            size = _number(r, 'size')
            if size <= 0:
                raise BadRequest("'size' must be positive")
            session.select_region(CropRegion(_number(r, 'x'), _number(r, 'y'), size))
        elif 'move' in data:
            m = _object(data, 'move')
            session.move_region(_number(m, 'dx'), _number(m, 'dy'))
        elif 'resize' in data:
            r = _object(data, 'resize')
            corner = r.get('corner')
            if corner not in ('tl', 'tr', 'bl', 'br'):
                raise BadRequest("'corner' must be one of tl, tr, bl, br")
            session.resize_region(corner, _number(r, 'x'), _number(r, 'y'))
        else:
            return jsonify({'error': 'Expected region, move or resize'}), 400
        return jsonify(preview_payload(sid, session, session.render_preview()))

    @app.route('/api/sessions/<sid>/team', methods=['POST'])
    def set_team(sid):
        session = sessions.get(sid)
        data = _json_body()
        session.set_team(team_or_400(data.get('team', '')))
        return jsonify(preview_payload(sid, session, session.render_preview()))

    @app.route('/api/sessions/<sid>/confirm', methods=['POST'])
    def confirm(sid):
        session = sessions.get(sid)
        if session.state in (SessionState.IMAGE_LOADED, SessionState.REGION_SELECTED):
            session.render_preview()
        result = session.finalize()
        in_app, marker = in_app_context(request.get_json(silent=True))
        return jsonify({'success': True, 'session_id': sid, 'session': session.to_dict(),
                        'width': result.size, 'height': result.size,
                        'filename': download_filename(session.team),
                        'delivery': delivery_methods(in_app), 'webview': marker,
                        'download_url': f'/api/sessions/{sid}/download',
                        'image_url': f'/api/sessions/{sid}/image'})

    def final_png(sid):
        session = sessions.get(sid)
        if session.state is not SessionState.FINALIZED or session.result is None:
            raise SessionError("Nothing to download yet")
        return session, io.BytesIO(session.result.png)

    @app.route('/api/sessions/<sid>/download')
    def download(sid):
        session, png = final_png(sid)
        return send_file(png, mimetype='image/png', as_attachment=True,
                         download_name=download_filename(session.team))

    @app.route('/api/sessions/<sid>/image')
    def image(sid):
        session, png = final_png(sid)
        return send_file(png, mimetype='image/png', download_name=download_filename(session.team))

    @app.route('/api/sessions/<sid>/retry', methods=['POST'])
    def retry(sid):
        session = sessions.get(sid)
        session.retry()
        return jsonify({'success': True, 'session_id': sid, 'session': session.to_dict()})

    @app.route('/api/environment', methods=['POST'])
    def environment():
        in_app, marker = in_app_context(request.get_json(silent=True))
        ua = request.headers.get('User-Agent', '')
        return jsonify({'classification': classify(ua).to_dict(), 'webview': marker,
                        'show_dialog': should_show_webview_dialog(marker is not None, client_prefs()),
                        'delivery': delivery_methods(in_app)})

    @app.route('/api/webview-dialog/dismiss', methods=['POST'])
    def dismiss_dialog():
        dismiss_webview_dialog(client_prefs())
        return jsonify({'success': True})

    # =========================================================================
    # Errors
    # =========================================================================
    @app.errorhandler(DecodeError)
    def decode_failed(e):
        return jsonify({'error': str(e), 'retry': 'upload'}), 400

    @app.errorhandler(RenderError)
    def render_failed(e):
        return jsonify({'error': 'Sorry, there was an error generating your image. Please try again.',
                        'retry': 'render'}), 500

    @app.errorhandler(SessionError)
    def wrong_state(e):
        return jsonify({'error': str(e)}), 409

    @app.errorhandler(SessionNotFound)
    def unknown_session(e):
        return jsonify({'error': 'Invalid session'}), 404

    @app.errorhandler(HTTPException)
    def http_error(e):
        if e.code == 413:
            return jsonify({'error': f'File too large (max {settings.max_upload_mb}MB)'}), 413
        return jsonify({'error': e.description}), e.code

    # =========================================================================
    # CLI
    # =========================================================================
    @app.cli.command('generate-frames')
    @click.argument('out_dir', type=click.Path(file_okay=False))
    @click.option('--size', default=REFERENCE_SIZE, show_default=True, help='Frame edge in pixels')
    def generate_frames_command(out_dir, size):
        """Draw the default frame of every team into OUT_DIR."""
        paths = generate_frames(campaign, out_dir, size)
        click.echo(f"All {len(paths)} frames generated successfully!")

    return app


HTML_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8"><meta name="viewport" content="width=device-width,initial-scale=1.0">
<title>{{ campaign.title }}</title>
<style>
:root{--t:0.2s ease;--bg:#eef2ff;--bg2:#fff;--bg3:#f4f4f5;--tx:#18181b;--tx2:#52525b;--tx3:#a1a1aa;--bd:#e4e4e7;--ac:#2563eb;--ac2:#1d4ed8;--acbg:rgba(37,99,235,0.08);--ok:#16a34a;--okbg:rgba(22,163,74,0.08);--err:#dc2626;--sh:0 4px 12px rgba(0,0,0,0.08)}
*{margin:0;padding:0;box-sizing:border-box}
body{font-family:-apple-system,Inter,sans-serif;background:var(--bg);color:var(--tx);min-height:100vh;display:flex;flex-direction:column}
.app{max-width:720px;margin:0 auto;padding:40px 24px;flex:1;width:100%}
.hdr{margin-bottom:32px;text-align:center}.hdr h1{font-size:1.5rem;font-weight:700}.hdr p{color:var(--tx2);font-size:0.9rem}
.steps{display:flex;justify-content:center;gap:8px;margin-bottom:32px;flex-wrap:wrap}
.step{display:flex;align-items:center;gap:6px;padding:8px 14px;background:var(--bg2);border:1px solid var(--bd);border-radius:20px;font-size:13px;font-weight:500;color:var(--tx3)}
.step.active{background:var(--acbg);border-color:var(--ac);color:var(--ac)}
.step.done{background:var(--okbg);border-color:var(--ok);color:var(--ok)}
.snum{width:20px;height:20px;border-radius:50%;background:var(--bg3);display:flex;align-items:center;justify-content:center;font-size:11px;font-weight:600}
.card{background:var(--bg2);border:1px solid var(--bd);border-radius:16px;padding:32px;box-shadow:var(--sh)}
.sec{display:none}.sec.active{display:block}
.teams{display:grid;grid-template-columns:repeat(3,1fr);gap:10px}
.team{border:1px solid var(--bd);border-radius:10px;padding:14px 10px;cursor:pointer;text-align:center}
.team:hover{border-color:var(--ac)}.team.sel{border-color:var(--ac);background:var(--acbg)}
.dot{width:14px;height:14px;border-radius:50%;display:inline-block;margin-bottom:6px}
.team b{display:block;font-size:0.85rem}.team small{color:var(--tx3);font-size:0.7rem}
.upz{border:2px dashed var(--bd);border-radius:12px;padding:48px 24px;text-align:center;cursor:pointer}
.upz:hover,.upz.drag{border-color:var(--ac);background:var(--acbg)}
.upz p{color:var(--tx3);font-size:0.875rem}
#fi{display:none}
.cropw{position:relative;display:inline-block;touch-action:none;user-select:none}
.cropw img{display:block;max-width:100%;max-height:420px}
#box{position:absolute;border:2px solid #fff;box-shadow:0 0 0 9999px rgba(0,0,0,0.45);cursor:move}
.h{position:absolute;width:16px;height:16px;background:#fff;border:1px solid #000}
.h.tl{left:-8px;top:-8px;cursor:nwse-resize}.h.tr{right:-8px;top:-8px;cursor:nesw-resize}
.h.bl{left:-8px;bottom:-8px;cursor:nesw-resize}.h.br{right:-8px;bottom:-8px;cursor:nwse-resize}
.cropc{text-align:center;overflow:hidden}
.previmg{width:256px;height:256px;border-radius:12px;box-shadow:var(--sh);background:var(--bg3)}
.final img{width:320px;max-width:100%;border-radius:12px;box-shadow:var(--sh)}
.center{text-align:center}.mt{margin-top:20px}
.btn{display:inline-flex;align-items:center;justify-content:center;gap:8px;padding:12px 24px;border:none;border-radius:10px;font-size:0.9rem;font-weight:500;cursor:pointer;font-family:inherit}
.btn-p{background:var(--ac);color:#fff}.btn-p:hover:not(:disabled){background:var(--ac2)}
.btn-s{background:var(--bg2);color:var(--tx);border:1px solid var(--bd)}
.btn:disabled{opacity:0.5;cursor:not-allowed}
.btng{display:flex;gap:12px;justify-content:center;margin-top:24px;flex-wrap:wrap}
.err{background:rgba(220,38,38,0.08);border:1px solid rgba(220,38,38,0.3);color:var(--err);padding:12px 16px;border-radius:10px;margin-bottom:20px;display:none;font-size:0.875rem}
.err.vis{display:flex;align-items:center;gap:10px}
.dlg{position:fixed;inset:0;background:rgba(0,0,0,0.5);display:none;align-items:center;justify-content:center;padding:16px;z-index:50}
.dlg.vis{display:flex}.dlgc{background:#fff;border-radius:12px;padding:24px;max-width:420px}
.dlgc h3{margin-bottom:12px}.dlgc p{color:var(--tx2);font-size:0.9rem;margin-bottom:8px}
.footer{padding:16px 24px;text-align:center;font-size:0.75rem;color:var(--tx3)}
@media(max-width:640px){.app{padding:24px 16px}.card{padding:24px 16px}.teams{grid-template-columns:repeat(2,1fr)}.btng{flex-direction:column}.btn{width:100%}}
</style>
</head>
<body>
<div class="app">
<header class="hdr"><h1>{{ campaign.title }}</h1><p>{{ campaign.subtitle }}</p></header>
<div class="steps">
<div class="step active" id="s1"><div class="snum">1</div><span>Team</span></div>
<div class="step" id="s2"><div class="snum">2</div><span>Upload</span></div>
<div class="step" id="s3"><div class="snum">3</div><span>Crop</span></div>
<div class="step" id="s4"><div class="snum">4</div><span>Download</span></div>
</div>
<div class="card">
<div class="err" id="err"><span>⚠️</span><span id="errtxt"></span><button class="btn btn-s" id="retrybtn" style="display:none" onclick="retry()">Retry</button></div>
<div class="sec active" id="sec1"><div class="teams">
{% for t in teams %}<div class="team" data-id="{{ t.id }}" onclick="selTeam('{{ t.id }}')"><span class="dot" style="background:{{ t.color }}"></span><b>{{ t.name }}</b><small>{{ t.description or '' }}</small></div>{% endfor %}
</div></div>
<div class="sec" id="sec2">
<div class="upz" id="upz"><h3>Drop your photo here</h3><p>or click to browse • JPG, PNG, GIF up to 10MB</p></div>
<input type="file" id="fi" accept="image/*">
<div class="btng"><button class="btn btn-s" onclick="go(1)">← Back</button></div>
</div>
<div class="sec" id="sec3"><div class="cropc">
<div class="cropw" id="cropw"><img id="srcimg" alt=""><div id="box"><div class="h tl" data-c="tl"></div><div class="h tr" data-c="tr"></div><div class="h bl" data-c="bl"></div><div class="h br" data-c="br"></div></div></div>
<div class="mt"><img class="previmg" id="previmg" alt="Preview"></div>
<div class="btng"><button class="btn btn-s" onclick="go(2)">← Back</button><button class="btn btn-p" id="confbtn" onclick="confirmCrop()">Next →</button></div>
</div></div>
<div class="sec" id="sec4"><div class="center final">
<img id="finalimg" alt="Your profile picture">
<div class="btng"><button class="btn btn-s" onclick="startOver()">Start Over</button><button class="btn btn-p" id="dlbtn" onclick="deliver()">⬇️ Download</button></div>
</div></div>
</div>
</div>
<div class="dlg" id="dlg"><div class="dlgc"><h3>You opened this link inside an app</h3>
<p>To frame and download your picture, open this page in your main browser (Chrome, Safari...).</p>
<p>Tap the <b>⋯</b> menu in the corner, then choose <b>Open in Browser</b>.</p>
<div class="btng"><button class="btn btn-s" onclick="closeDlg()">Close</button><button class="btn btn-p" onclick="dismissDlg()">Got it!</button></div></div></div>
<footer class="footer">© {{ campaign.year }} {{ campaign.footer }}</footer>
<script>
let S={step:1,team:null,sid:null,rev:0,dw:0,dh:0,r:null,caps:[],fin:null};
const fi=document.getElementById('fi'),upz=document.getElementById('upz'),box=document.getElementById('box'),src=document.getElementById('srcimg');
upz.onclick=()=>fi.click();
upz.ondragover=e=>{e.preventDefault();upz.classList.add('drag')};
upz.ondragleave=()=>upz.classList.remove('drag');
upz.ondrop=e=>{e.preventDefault();upz.classList.remove('drag');if(e.dataTransfer.files.length)upload(e.dataTransfer.files[0])};
fi.onchange=e=>{if(e.target.files.length)upload(e.target.files[0])};
if(window.webkit&&window.webkit.messageHandlers)S.caps.push('webkit.messageHandlers');
if(window.Android)S.caps.push('Android');
if(window.ReactNativeWebView)S.caps.push('ReactNativeWebView');

async function api(url,opts){const r=await fetch(url,opts);const d=await r.json().catch(()=>({error:'Unexpected response'}));if(!r.ok){const e=new Error(d.error||'Request failed');e.retry=d.retry;throw e}return d}
function json(b){return{method:'POST',headers:{'Content-Type':'application/json'},body:JSON.stringify(b)}}

async function env(){try{const d=await api('/api/environment',json({capabilities:S.caps}));
if(d.show_dialog)setTimeout(()=>document.getElementById('dlg').classList.add('vis'),1000)}catch(e){console.error(e)}}
function closeDlg(){document.getElementById('dlg').classList.remove('vis')}
async function dismissDlg(){closeDlg();await fetch('/api/webview-dialog/dismiss',{method:'POST'})}

async function selTeam(id){S.team=id;document.querySelectorAll('.team').forEach(o=>o.classList.toggle('sel',o.dataset.id===id));
if(S.sid){try{show(await api('/api/sessions/'+S.sid+'/team',json({team:id})))}catch(e){err(e)}}go(S.sid?3:2)}

function upload(f){hide();if(!f.type.startsWith('image/')){err(new Error('Please choose an image file'));return}
const url=URL.createObjectURL(f);src.onload=async()=>{go(3);S.dw=src.clientWidth;S.dh=src.clientHeight;
const fd=new FormData();fd.append('image',f);fd.append('team',S.team);fd.append('display_width',S.dw);fd.append('display_height',S.dh);
try{const d=await api(S.sid?'/api/sessions/'+S.sid+'/upload':'/api/sessions',{method:'POST',body:fd});S.sid=d.session_id;show(d)}
catch(e){err(e);go(2)}};src.src=url}

function show(d){if(d.revision<S.rev)return;S.rev=d.revision;S.r=d.session.region;S.dw=d.session.display_size[0];S.dh=d.session.display_size[1];
place();document.getElementById('previmg').src=d.preview}
function place(){if(!S.r)return;const k=src.clientWidth/S.dw;box.style.left=S.r.x*k+'px';box.style.top=S.r.y*k+'px';box.style.width=box.style.height=S.r.size*k+'px'}

let drag=null;
box.onpointerdown=e=>{e.preventDefault();box.setPointerCapture(e.pointerId);drag={c:e.target.dataset.c||null,x:e.clientX,y:e.clientY,r:{...S.r}}};
box.onpointermove=e=>{if(!drag)return;const k=S.dw/src.clientWidth,b=src.getBoundingClientRect();
if(drag.c){const px=(e.clientX-b.left)*k,py=(e.clientY-b.top)*k;drag.send={resize:{corner:drag.c,x:px,y:py}};
const a={tl:[drag.r.x+drag.r.size,drag.r.y+drag.r.size],tr:[drag.r.x,drag.r.y+drag.r.size],bl:[drag.r.x+drag.r.size,drag.r.y],br:[drag.r.x,drag.r.y]}[drag.c];
const s=Math.max(10,Math.min(Math.abs(px-a[0]),Math.abs(py-a[1])));S.r={x:px<a[0]?a[0]-s:a[0],y:py<a[1]?a[1]-s:a[1],size:s}}
else{const dx=(e.clientX-drag.x)*k,dy=(e.clientY-drag.y)*k;drag.send={move:{dx:dx,dy:dy}};
S.r={x:Math.max(0,Math.min(drag.r.x+dx,S.dw-drag.r.size)),y:Math.max(0,Math.min(drag.r.y+dy,S.dh-drag.r.size)),size:drag.r.size}}place()};
box.onpointerup=async()=>{if(!drag)return;const d=drag;drag=null;if(!d.send)return;
try{show(await api('/api/sessions/'+S.sid+'/region',json({region:S.r,display:{width:S.dw,height:S.dh}})))}catch(e){err(e)}};
window.onresize=place;

async function confirmCrop(){hide();const b=document.getElementById('confbtn');b.disabled=true;
try{S.fin=await api('/api/sessions/'+S.sid+'/confirm',json({capabilities:S.caps}));
document.getElementById('finalimg').src=S.fin.image_url+'?r='+S.fin.session.revision;
document.getElementById('dlbtn').textContent=S.fin.delivery[0]==='download'?'⬇️ Download':'📤 Share / Save to Photos';go(4)}
catch(e){err(e)}finally{b.disabled=false}}

async function deliver(){for(const m of S.fin.delivery){try{
if(m==='download'){const r=await fetch(S.fin.download_url);if(!r.ok)throw new Error('Download failed');
const a=document.createElement('a');a.href=URL.createObjectURL(await r.blob());a.download=S.fin.filename;a.click();return}
if(m==='share'){const blob=await (await fetch(S.fin.image_url)).blob();const f=new File([blob],S.fin.filename,{type:'image/png'});
if(navigator.share&&navigator.canShare&&navigator.canShare({files:[f]})){await navigator.share({title:{{ campaign.title|tojson }},text:{{ campaign.share_text|tojson }},files:[f]});return}continue}
if(m==='open'){window.open(S.fin.image_url,'_blank');return}}catch(e){console.error('Delivery failed:',m,e)}}
err(new Error('Could not save the image. Long-press it to save.'))}

async function retry(){hide();try{if(S.sid){const d=await api('/api/sessions/'+S.sid+'/retry',{method:'POST'});
if(d.session.state==='idle'){go(2);return}}if(S.step===4)await confirmCrop()}catch(e){err(e)}}

function go(n){if(n>=2&&!S.team){err(new Error('Choose a team first'));return}
S.step=n;for(let i=1;i<=4;i++){const s=document.getElementById('s'+i);s.classList.toggle('active',i===n);s.classList.toggle('done',i<n)}
document.querySelectorAll('.sec').forEach(s=>s.classList.remove('active'));document.getElementById('sec'+n).classList.add('active');if(n===3)place()}

async function startOver(){if(S.sid)await fetch('/api/sessions/'+S.sid,{method:'DELETE'});
S={step:1,team:null,sid:null,rev:0,dw:0,dh:0,r:null,caps:S.caps,fin:null};fi.value='';
document.querySelectorAll('.team').forEach(o=>o.classList.remove('sel'));go(1)}

function err(e){document.getElementById('errtxt').textContent=e.message;document.getElementById('retrybtn').style.display=e.retry?'inline-flex':'none';document.getElementById('err').classList.add('vis')}
function hide(){document.getElementById('err').classList.remove('vis')}
env();
</script>
</body>
</html>
'''

LANDING_TEMPLATE = '''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8"><meta name="viewport" content="width=device-width,initial-scale=1.0">
<title>Opening in {{ browser }}</title>
<style>
*{margin:0;padding:0;box-sizing:border-box}
body{font-family:-apple-system,Inter,sans-serif;background:#eef2ff;min-height:100vh;display:flex;align-items:center;justify-content:center;padding:16px}
.card{background:#fff;border-radius:16px;box-shadow:0 4px 12px rgba(0,0,0,0.08);padding:32px;max-width:420px;width:100%;text-align:center}
h1{font-size:1.4rem;margin-bottom:8px}p{color:#52525b;margin-bottom:16px}
.count{font-size:2rem;font-weight:700;color:#2563eb;margin-bottom:16px}
ol{text-align:left;background:#eff6ff;border-radius:10px;padding:16px 16px 16px 32px;color:#1d4ed8;font-size:0.9rem;margin-bottom:16px}
.btn{display:block;width:100%;padding:12px 24px;border-radius:10px;font-size:0.9rem;font-weight:500;border:none;cursor:pointer;margin-top:10px;text-decoration:none;font-family:inherit}
.btn-p{background:#2563eb;color:#fff}.btn-s{background:#f4f4f5;color:#18181b}
</style>
</head>
<body>
<div class="card">
<h1>Opening in {{ browser }}</h1>
<p>We're sending you to {{ browser }} for a better download experience.</p>
<div class="count" id="count">5</div>
<ol><li>Tap the share or ⋯ menu</li><li>Choose "Open in {{ browser }}"</li><li>Enjoy better download support!</li></ol>
<button class="btn btn-p" onclick="copyLink()">Copy Link & Open {{ browser }}</button>
<a class="btn btn-s" href="{{ continue_url }}">Continue in Current Browser</a>
</div>
<script>
const target={{ target|tojson }},handoff={{ handoff|tojson }};
setTimeout(()=>handoff.forEach((u,i)=>setTimeout(()=>{window.location.href=u},i*1000)),1000);
let n=5;const iv=setInterval(()=>{n=Math.max(0,n-1);document.getElementById('count').textContent=n;if(!n)clearInterval(iv)},1000);
function copyLink(){navigator.clipboard.writeText(target).then(()=>alert('Link copied! Paste it in {{ browser }} for the best experience.'))}
</script>
</body>
</html>
'''

if __name__ == '__main__':
    settings = Settings.from_env()
    print(f"\n🚀 Twibbon Profile Frame Server\n📍 http://localhost:{settings.port}\n")
    create_app(settings).run(host='0.0.0.0', port=settings.port, debug=False)
