from fastapi.responses import HTMLResponse

from proxy_everything.proxy.finisher import finish

ROOT_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <meta name="robots" content="noindex, nofollow">
  <title>Proxy Everything</title>
  <link href="https://cdnjs.cloudflare.com/ajax/libs/materialize/1.0.0/css/materialize.min.css" rel="stylesheet">
  <style>
      body, html { height: 100%; margin: 0; }
      .background {
          background-color: #eceff1;
          height: 100%;
          display: flex;
          align-items: center;
          justify-content: center;
      }
      .card { background-color: rgba(255, 255, 255, 0.9); }
      .input-field input[type=text] { color: #2c3e50; }
  </style>
</head>
<body>
  <div class="background">
      <div class="container">
          <div class="row">
              <div class="col s12 m8 offset-m2 l6 offset-l3">
                  <div class="card">
                      <div class="card-content">
                          <span class="card-title center-align">Proxy Everything</span>
                          <form id="urlForm" onsubmit="redirectToProxy(event)">
                              <div class="input-field">
                                  <input type="text" id="targetUrl" placeholder="https://example.com" required>
                                  <label for="targetUrl">Target URL</label>
                              </div>
                              <button type="submit" class="btn waves-effect waves-light teal darken-2">Go</button>
                          </form>
                      </div>
                  </div>
              </div>
          </div>
      </div>
  </div>
  <script>
      function redirectToProxy(event) {
          event.preventDefault();
          const targetUrl = document.getElementById('targetUrl').value.trim();
          window.open(window.location.origin + '/' + encodeURIComponent(targetUrl), '_blank');
      }
  </script>
</body>
</html>
"""


def landing_response() -> HTMLResponse:
    return finish(HTMLResponse(ROOT_HTML))
