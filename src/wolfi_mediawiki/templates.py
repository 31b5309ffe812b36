"""Text templates for the generated build context.

The files rendered here are full of shell and nginx ``$`` variables, so the
templates use ``@{name}`` placeholders instead of ``string.Template``'s
default ``$`` delimiter. A literal ``@`` is written as ``@@``.
"""

from __future__ import annotations

from string import Template


class ArtifactTemplate(Template):
    """``string.Template`` with ``@`` as the placeholder delimiter."""
    delimiter = "@"


DOCKERFILE = ArtifactTemplate("""\
FROM @{base_image}

# Build-time versions (defaults are the versions this file was generated for)
ARG PHP_VERSION=@{php_version}
ENV PHP_VERSION=${PHP_VERSION}

ARG MEDIAWIKI_VERSION=@{mediawiki_version}
ENV MEDIAWIKI_VERSION=${MEDIAWIKI_VERSION}

ARG MEDIAWIKI_MAJOR_VERSION=@{mediawiki_major_version}
ENV MEDIAWIKI_MAJOR_VERSION=${MEDIAWIKI_MAJOR_VERSION}

# Base packages, PHP and the required PHP extensions
RUN echo "Detected PHP version: ${PHP_VERSION}" && \\
    apk update && \\
    apk add --no-cache \\
@{base_packages}
    && (apk add --no-cache php-${PHP_VERSION} php-${PHP_VERSION}-fpm || true) \\
    && if ! command -v php > /dev/null; then \\
          echo "Trying alternative PHP package naming..."; \\
          PHP_PKG=$(apk search php | grep -E "^php-${PHP_VERSION}-${PHP_VERSION}" | sort -V | tail -1 | @{strip_version}); \\
          if [ -n "$PHP_PKG" ]; then \\
            echo "Found PHP package: $PHP_PKG"; \\
            apk add --no-cache "$PHP_PKG"; \\
          else \\
            echo "Could not find PHP package for version ${PHP_VERSION}"; \\
            exit 1; \\
          fi; \\
       fi \\
    && for ext in @{extensions}; do \\
         echo "Installing extension: $ext"; \\
         apk add --no-cache "php-${PHP_VERSION}-${ext}" || \\
         { EXT_PKG=$(apk search php | grep -E "^php-${PHP_VERSION}-${ext}-[0-9]+" | sort -V | tail -1 | @{strip_version}); \\
           [ -n "$EXT_PKG" ] && apk add --no-cache "$EXT_PKG"; } || \\
         @{extension_failure}; \\
       done

# Users and groups
RUN groupadd -r @{app_user} && \\
    useradd -r -g @{app_user} -d @{document_root} -s /sbin/nologin @{app_user} && \\
    groupadd -r @{web_user} && \\
    useradd -r -g @{web_user} -d /var/lib/nginx -s /sbin/nologin @{web_user}

# Directory layout
RUN mkdir -p @{document_root} /var/www/data /var/log/nginx /run/nginx \\
    /var/lib/nginx/tmp/client_body /var/lib/nginx/tmp/proxy \\
    /var/lib/nginx/tmp/fastcgi /var/lib/nginx/logs && \\
    chown -R @{app_user}:@{app_user} @{document_root} /var/www/data && \\
    chown -R @{web_user}:@{web_user} /var/log/nginx /run/nginx /var/lib/nginx

# MediaWiki
RUN wget "@{release_url}/${MEDIAWIKI_MAJOR_VERSION}/mediawiki-${MEDIAWIKI_VERSION}.tar.gz" -O /tmp/mediawiki.tar.gz && \\
    tar -xzf /tmp/mediawiki.tar.gz --strip-components=1 -C @{document_root} && \\
    rm /tmp/mediawiki.tar.gz && \\
    chown -R @{app_user}:@{app_user} @{document_root}

# PHP configuration
RUN mkdir -p /etc/php/${PHP_VERSION}/conf.d/extensions && \\
@{php_ini}

# Nginx configuration
RUN rm -f /etc/nginx/nginx.conf /etc/nginx/conf.d/*.conf 2>/dev/null || true
COPY nginx.conf /etc/nginx/nginx.conf
COPY fastcgi_params /etc/nginx/fastcgi_params

# Web files readable by nginx, uploads directory
RUN chmod -R 755 @{document_root} && \\
    chmod -R g+r @{document_root} && \\
    usermod -a -G @{app_user} @{web_user} && \\
    mkdir -p @{document_root}/images/tmp @{document_root}/images/thumb && \\
    chown -R @{app_user}:@{app_user} @{document_root}/images && \\
    chmod -R 755 @{document_root}/images

# PHP diagnostic page used by the health check
RUN echo "<?php phpinfo(); ?>" > @{document_root}/info.php && \\
    chown @{app_user}:@{app_user} @{document_root}/info.php

COPY healthcheck.sh /healthcheck.sh
COPY entrypoint.sh /entrypoint.sh
RUN chmod +x /healthcheck.sh /entrypoint.sh

HEALTHCHECK --interval=@{health_interval} --timeout=@{health_timeout} --start-period=@{health_start_period} --retries=@{health_retries} \\
    CMD /healthcheck.sh

EXPOSE @{http_port}

WORKDIR @{document_root}

ENTRYPOINT ["/entrypoint.sh"]
""")


NGINX_CONF = ArtifactTemplate("""\
user @{web_user} @{web_user};
worker_processes auto;
pid /run/nginx/nginx.pid;

events {
    worker_connections 768;
}

http {
    sendfile on;
    tcp_nopush on;
    tcp_nodelay on;
    keepalive_timeout 65;
    types_hash_max_size 2048;
    include /etc/nginx/mime.types;
    default_type application/octet-stream;

    server {
        listen @{http_port};
        root @{document_root};
        index index.php;
        server_name _;

        location / {
            try_files $uri $uri/ /index.php?$args;
        }

        location ~ \\.php$ {
            include fastcgi_params;
            fastcgi_pass @{fpm_listen};
            fastcgi_index index.php;
            fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
        }

        # Uploads: no sniffing, no script execution
        location @{upload_path} {
            add_header X-Content-Type-Options "nosniff" always;
            location ~ \\.php$ {
                deny all;
            }
        }
    }
}
""")


FASTCGI_PARAMS = ArtifactTemplate("""\
fastcgi_param  QUERY_STRING       $query_string;
fastcgi_param  REQUEST_METHOD     $request_method;
fastcgi_param  CONTENT_TYPE       $content_type;
fastcgi_param  CONTENT_LENGTH     $content_length;
fastcgi_param  SCRIPT_NAME        $fastcgi_script_name;
fastcgi_param  REQUEST_URI        $request_uri;
fastcgi_param  DOCUMENT_URI       $document_uri;
fastcgi_param  DOCUMENT_ROOT      $document_root;
fastcgi_param  SERVER_PROTOCOL    $server_protocol;
fastcgi_param  GATEWAY_INTERFACE  CGI/1.1;
fastcgi_param  SERVER_SOFTWARE    nginx/$nginx_version;
fastcgi_param  REMOTE_ADDR        $remote_addr;
fastcgi_param  REMOTE_PORT        $remote_port;
fastcgi_param  SERVER_ADDR        $server_addr;
fastcgi_param  SERVER_PORT        $server_port;
fastcgi_param  SERVER_NAME        $server_name;
""")


ENTRYPOINT = ArtifactTemplate("""\
#!/bin/sh
set -e

mkdir -p /run/php-fpm

# PHP-FPM pool running as the @{app_user} user
CONF_DIR="/etc/php/${PHP_VERSION}/php-fpm.d"
CONF_PATH="$CONF_DIR/www.conf"
mkdir -p "$CONF_DIR"
cat > "$CONF_PATH" <<POOL
[www]
user = @{app_user}
group = @{app_user}
listen = @{fpm_listen}
pm = dynamic
pm.max_children = 5
pm.start_servers = 2
pm.min_spare_servers = 1
pm.max_spare_servers = 3
POOL

echo "Looking for PHP-FPM executable..."
PHP_FPM_BIN=""
for candidate in @{fpm_candidates}; do
  if [ -x "$candidate" ]; then
    PHP_FPM_BIN="$candidate"
    break
  fi
done

if [ -z "$PHP_FPM_BIN" ]; then
  echo "PHP-FPM executable not found. Attempting to find it..."
  PHP_FPM_BIN=$(find /usr -name "php-fpm*" -type f -executable | grep -v "\\.conf" | head -1)
  if [ -z "$PHP_FPM_BIN" ]; then
    echo "Error: PHP-FPM executable could not be found"
    exit 1
  fi
fi
echo "Found PHP-FPM at: $PHP_FPM_BIN"

echo "Starting PHP-FPM with user: @{app_user}"
"$PHP_FPM_BIN" --nodaemonize --fpm-config "$CONF_PATH" &

echo "Starting Nginx with user: @{web_user}"
exec nginx -g "daemon off;"
""")


HEALTHCHECK = ArtifactTemplate("""\
#!/bin/sh

if ! ps aux | grep -v grep | grep -q nginx; then
  echo "Health check failed: Nginx is not running"
  exit 1
fi

if ! ps aux | grep -v grep | grep -q php-fpm; then
  echo "Health check failed: PHP-FPM is not running"
  exit 1
fi

if ! curl -s -f http://localhost@{info_path} | grep -q "@{info_marker}"; then
  echo "Health check failed: Cannot access PHP info page"
  exit 1
fi

if ! ping -c 1 localhost > /dev/null 2>&1; then
  echo "Health check failed: Cannot ping localhost"
  exit 1
fi

# Advisory only: the wizard disappears once MediaWiki is configured
SETUP_PAGE=$(curl -s "http://localhost@{setup_path}" 2>/dev/null || true)
if echo "$SETUP_PAGE" | grep -q "@{setup_marker}"; then
  echo "MediaWiki setup page is accessible and environment check passed"
elif echo "$SETUP_PAGE" | grep -q "@{setup_fallback_marker}"; then
  echo "MediaWiki setup page is accessible"
else
  echo "Warning: MediaWiki setup page is not accessible, but this might be expected if already configured"
fi

echo "Health check passed"
exit 0
""")
