"""HTML page rendering for the interactive configuration experience."""

from __future__ import annotations

import json
from textwrap import dedent

from .config import Settings


CONFIG_TEMPLATE = dedent(
    """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>__APP_NAME__ · Configuration</title>
    <style>
        :root {
            color-scheme: dark;
            font-family: 'Inter', 'Segoe UI', system-ui, -apple-system, sans-serif;
            --surface: #141414;
            --text-primary: #f5f5f5;
            --text-muted: #a6a6a6;
            --outline: #2b2b2b;
            --accent: #4caf50;
            background: #000000;
            color: var(--text-primary);
        }
        * {
            box-sizing: border-box;
        }
        body {
            margin: 0;
            min-height: 100vh;
        }
        main {
            max-width: 640px;
            margin: 0 auto;
            padding: 3rem 1.5rem 4rem;
        }
        header {
            text-align: center;
            margin-bottom: 2rem;
        }
        fieldset {
            border: 1px solid var(--outline);
            border-radius: 12px;
            padding: 1.25rem;
            margin-bottom: 1.5rem;
            background: var(--surface);
        }
        label {
            display: block;
            margin: 0.75rem 0 0.25rem;
            color: var(--text-muted);
        }
        input {
            width: 100%;
            padding: 0.6rem 0.75rem;
            border-radius: 8px;
            border: 1px solid var(--outline);
            background: #0b0b0b;
            color: var(--text-primary);
        }
        button {
            width: 100%;
            padding: 0.8rem;
            border: none;
            border-radius: 8px;
            background: var(--accent);
            color: #050505;
            font-weight: 600;
            cursor: pointer;
        }
        #result {
            margin-top: 1.5rem;
            word-break: break-all;
        }
        .hint {
            color: var(--text-muted);
            font-size: 0.9rem;
        }
    </style>
</head>
<body>
    <main>
        <header>
            <h1>__APP_NAME__</h1>
            <p class="hint">Connect an Xtream Codes account or an M3U playlist.</p>
        </header>
        <form id="config-form">
            <fieldset>
                <legend>Xtream Codes</legend>
                <label for="xtreamUrl">Server URL</label>
                <input id="xtreamUrl" name="xtreamUrl" placeholder="http://provider.example:8080" />
                <label for="xtreamUsername">Username</label>
                <input id="xtreamUsername" name="xtreamUsername" autocomplete="off" />
                <label for="xtreamPassword">Password</label>
                <input id="xtreamPassword" name="xtreamPassword" type="password" autocomplete="off" />
            </fieldset>
            <fieldset>
                <legend>M3U playlist</legend>
                <label for="m3uUrl">Playlist URL</label>
                <input id="m3uUrl" name="m3uUrl" />
                <label for="epgUrl">EPG URL (optional)</label>
                <input id="epgUrl" name="epgUrl" />
            </fieldset>
            <button type="submit">Generate install link</button>
            <p class="hint" id="encryption-hint"></p>
        </form>
        <div id="result"></div>
    </main>
    <script>
        (function() {
            const defaults = __DEFAULTS_JSON__;
            const form = document.getElementById('config-form');
            const result = document.getElementById('result');
            document.getElementById('encryption-hint').textContent = defaults.encryption
                ? 'Tokens are encrypted by the server.'
                : 'Tokens are encoded, not encrypted. Set CONFIG_SECRET on the server to encrypt them.';

            form.addEventListener('submit', async (event) => {
                event.preventDefault();
                const payload = Object.fromEntries(new FormData(form).entries());
                result.textContent = 'Working...';
                try {
                    const response = await fetch('/configure', {
                        method: 'POST',
                        headers: { 'Content-Type': 'application/json' },
                        body: JSON.stringify(payload),
                    });
                    const data = await response.json();
                    if (!response.ok) {
                        result.textContent = data.detail || data.error || 'Configuration failed';
                        return;
                    }
                    result.innerHTML = '';
                    const install = document.createElement('a');
                    install.href = data.installUrl;
                    install.textContent = 'Install in Stremio';
                    const manifest = document.createElement('p');
                    manifest.textContent = data.manifestUrl;
                    result.append(install, manifest);
                } catch (err) {
                    console.error('Configuration request failed', err);
                    result.textContent = 'Configuration failed';
                }
            });
        })();
    </script>
</body>
</html>
    """
)


def render_config_page(settings: Settings) -> str:
    """Return the full HTML for the configuration landing page."""

    defaults = {
        "appName": settings.app_name,
        "encryption": settings.encryption_enabled,
    }
    defaults_json = json.dumps(defaults).replace("</", "<\\/")

    html = CONFIG_TEMPLATE
    replacements = {
        "__APP_NAME__": settings.app_name,
        "__DEFAULTS_JSON__": defaults_json,
    }
    for placeholder, value in replacements.items():
        html = html.replace(placeholder, value)
    return html
