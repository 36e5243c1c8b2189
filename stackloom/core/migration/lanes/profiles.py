"""Built-in framework profiles.

Profiles are data: legacy packages and routing components of source
frameworks, and the legitimate import surface of target frameworks.
"""

from .base import FrameworkProfile

NEXTJS_PATH_ALIASES = {
    "components": "@components",
    "lib": "@lib",
    "hooks": "@hooks",
    "context": "@context",
    "app": "@app",
    "types": "@types",
    "utils": "@utils",
    "services": "@services",
}

REACT = FrameworkProfile(
    name="React",
    aliases=("reactjs", "cra", "create-react-app"),
    legacy_packages=("react-router", "@reach/router", "react-helmet"),
    legacy_components=("Route", "Routes", "BrowserRouter", "Navigate"),
    reference_patterns=(
        r"react-router",
        r"\bRoute\b",
        r"\bSwitch\b",
        r"\bBrowserRouter\b",
        r"useNavigate\(",
    ),
)

VUE = FrameworkProfile(
    name="Vue",
    aliases=("vuejs", "vue2", "vue3"),
    legacy_packages=("vue-router", "vuex"),
    reference_patterns=(r"vue-router", r"\bVuex\b", r"\$router", r"\$route"),
)

ANGULAR = FrameworkProfile(
    name="Angular",
    aliases=("angularjs",),
    legacy_packages=("@angular/router", "@angular/common"),
)

FLASK = FrameworkProfile(
    name="Flask",
    legacy_packages=("flask",),
    reference_patterns=(r"from flask import", r"@app\.route"),
)

DJANGO = FrameworkProfile(
    name="Django",
    legacy_packages=("django",),
)

NEXTJS = FrameworkProfile(
    name="Next.js",
    aliases=("next", "nextjs-app", "nextjs-app-router"),
    valid_import_prefixes=("next/", "react", "@vercel/"),
    path_aliases=NEXTJS_PATH_ALIASES,
)

NUXT = FrameworkProfile(
    name="Nuxt",
    aliases=("nuxtjs", "nuxt3"),
    valid_import_prefixes=("nuxt/", "vue", "@nuxt/"),
)

FASTAPI = FrameworkProfile(
    name="FastAPI",
    valid_import_prefixes=("fastapi", "pydantic", "starlette"),
)

NESTJS = FrameworkProfile(
    name="NestJS",
    aliases=("nest",),
    valid_import_prefixes=("@nestjs/", "express"),
)

BUILTIN_PROFILES = (REACT, VUE, ANGULAR, FLASK, DJANGO, NEXTJS, NUXT, FASTAPI, NESTJS)
