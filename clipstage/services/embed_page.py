"""Markup and headers for the page shown inside the OBS browser source."""

import base64
import html
import uuid

from clipstage.schemas.clip import ClipDescriptor

EMBED_BASE_URL = "https://clips.twitch.tv/embed"

STYLESHEET = """\
div {
    background-color: #0071c5;
    background-color: rgba(0,113,197,1);
    margin: 0 auto;
    overflow: hidden;
}

#twitch-embed {
    display: block;
}

.iframe-container {
    height: [[height]]px;
    position: relative;
    width: [[width]]px;
}

#clip-iframe {
    height: 100%;
    left: 0;
    position: absolute;
    top: 0;
    width: 100%;
}

#overlay-text {
    background-color: #042239;
    background-color: rgba(4,34,57,0.7071);
    border-radius: 5px;
    color: #ffb809;
    left: 5%;
    opacity: 0.5;
    padding: 10px;
    position: absolute;
    top: 80%;
}

.line1, .line2, .line3 {
    font-family: 'Open Sans', sans-serif;
    font-size: 2em;
}

.line1 {
    font: normal 600 2em/1.2 'OpenDyslexic', 'Open Sans', sans-serif;
}

.line2 {
    font: normal 400 1.5em/1 'OpenDyslexic', 'Open Sans', sans-serif;
}

.line3 {
    font: italic 100 1em/1 'OpenDyslexic', 'Open Sans', sans-serif;
}
"""

PAGE_TEMPLATE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<link href="/index.css" rel="stylesheet" type="text/css">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Clipstage</title>
</head>
<body>
<div id="twitch-embed">
    <div class="iframe-container">
        <iframe allowfullscreen autoplay="true" controls="false" height="[[height]]" id="clip-iframe" mute="false" preload="auto"
            src="[[embedUrl]]" title="Clipstage" width="[[width]]">
        </iframe>
        <div class="overlay-text" id="overlay-text">
            <div class="line1">[[streamerName]] doin' a heckin' [[gameName]] stream</div>
            <div class="line2">[[clipTitle]]</div>
            <div class="line3">by [[curatorName]]</div>
        </div>
    </div>
</div>
<script nonce="[[nonce]]">
    let contentWarningDetected = false;

    const showNotice = (automated) => {
        const notice = document.createElement('div');
        notice.id = 'content-warning-notification';
        notice.style.cssText = 'position:absolute;top:10%;right:5%;padding:15px;border-radius:5px;'
            + 'font-family:"Open Sans",sans-serif;z-index:1000;max-width:320px;text-align:center;';
        if (automated) {
            notice.style.background = 'rgba(76, 175, 80, 0.9)';
            notice.style.color = 'white';
            notice.innerHTML = '<strong>Content Warning Handled</strong><br><small>OBS automation active</small>';
        } else {
            notice.style.background = 'rgba(255, 184, 9, 0.9)';
            notice.style.color = '#042239';
            notice.innerHTML = '<strong>Content Warning</strong><br>Right-click the Browser Source in OBS,'
                + ' select "Interact" and click through the warning.';
        }
        document.body.appendChild(notice);
        setTimeout(() => notice.remove(), 12000);
    };

    const handleContentWarning = async (detectionMethod) => {
        if (contentWarningDetected) return;
        contentWarningDetected = true;
        try {
            const response = await fetch('/api/content-warning', {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({
                    clipId: '[[clipId]]',
                    detectionMethod: detectionMethod,
                    timestamp: new Date().toISOString()
                })
            });
            const result = await response.json();
            showNotice(result && result.obsAutomation === true);
        } catch (error) {
            showNotice(false);
        }
    };

    const iframe = document.getElementById('clip-iframe');
    const detectContentWarning = () => {
        if (iframe.src.includes('error=') || iframe.src.includes('warning=')) {
            handleContentWarning('URL-parameter');
            return;
        }
        setTimeout(() => {
            try {
                if (!iframe.contentWindow || iframe.contentWindow.location.href === 'about:blank') {
                    handleContentWarning('loading-delay');
                }
            } catch (e) {
                // Cross-origin access means the embed loaded
            }
        }, 4000);
    };

    iframe.addEventListener('load', () => setTimeout(detectContentWarning, 1000));
    window.addEventListener('message', (event) => {
        if (event.origin !== 'https://clips.twitch.tv') return;
        if (event.data && (event.data.type === 'mature-content-gate' || event.data.type === 'content-warning')) {
            handleContentWarning('postMessage');
        }
    });
</script>
</body>
</html>
"""

BLANK_PAGE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Clipstage</title>
</head>
<body></body>
</html>
"""

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}


def create_nonce(length: int = 16) -> str:
    """Short URL-safe token from a random UUID's base64 form."""
    encoded = base64.b64encode(uuid.uuid4().bytes).decode("ascii")
    return encoded.replace("+", "-").replace("/", "_").replace("=", "_")[:length]


def content_security_policy(nonce: str) -> str:
    return (
        f"script-src 'nonce-{nonce}' 'strict-dynamic'; object-src 'none'; "
        f"base-uri 'none'; frame-ancestors 'self' https://clips.twitch.tv;"
    )


def page_headers(nonce: str | None = None) -> dict[str, str]:
    headers = {**NO_CACHE_HEADERS, **CORS_HEADERS}
    if nonce is not None:
        headers["Content-Security-Policy"] = content_security_policy(nonce)
    return headers


def embed_url(clip_id: str, parent: str = "localhost") -> str:
    return f"{EMBED_BASE_URL}?clip={clip_id}&autoplay=true&parent={parent}"


def render_stylesheet(width: int = 1920, height: int = 1080) -> str:
    return STYLESHEET.replace("[[width]]", str(width)).replace("[[height]]", str(height))


def render_page(
    clip: ClipDescriptor | None,
    nonce: str,
    game_name: str | None = None,
    width: int = 1920,
    height: int = 1080,
) -> str:
    if clip is None:
        return BLANK_PAGE
    replacements = {
        "[[embedUrl]]": html.escape(embed_url(clip.id)),
        "[[clipId]]": html.escape(clip.id),
        "[[nonce]]": nonce,
        "[[width]]": str(width),
        "[[height]]": str(height),
        "[[streamerName]]": html.escape(clip.broadcaster_name or "Unknown"),
        "[[gameName]]": html.escape(game_name or "Unknown"),
        "[[clipTitle]]": html.escape(clip.title),
        "[[curatorName]]": html.escape(clip.creator_name or "Unknown"),
    }
    page = PAGE_TEMPLATE
    for placeholder, value in replacements.items():
        page = page.replace(placeholder, value)
    return page
