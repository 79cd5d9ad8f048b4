"""Catalog and manifests served when the remote catalog is unreachable."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pinas.packages.models import PackageManifest

DOCKER_I18N = {
    "en": {
        "serviceStatus": "Service running",
        "status": {"normal": "Normal", "stopped": "Stopped", "error": "Error"},
        "stats": {
            "projects": "Projects",
            "containers": "Containers",
            "local": "Local",
            "data": "Data",
        },
        "cpuUsage": "CPU usage",
        "memoryCapacity": "Memory capacity",
        "available": "Available",
        "views": {
            "overview": "Overview",
            "project": "Project",
            "container": "Container",
            "image": "Image",
            "network": "Network",
            "log": "Log",
            "management": "Management",
        },
        "table": {
            "name": "Name",
            "image": "Image",
            "status": "Status",
            "ports": "Ports",
            "actions": "Actions",
            "repository": "Repository",
            "tag": "Tag",
            "imageId": "Image ID",
            "size": "Size",
            "created": "Created",
        },
        "noContainers": "No containers found",
        "noImages": "No images found",
        "underDevelopment": "This section is under development",
    },
    "fr": {
        "serviceStatus": "Service en cours",
        "status": {"normal": "Normal", "stopped": "Arrêté", "error": "Erreur"},
        "stats": {
            "projects": "Projets",
            "containers": "Conteneurs",
            "local": "Local",
            "data": "Données",
        },
        "cpuUsage": "Utilisation CPU",
        "memoryCapacity": "Capacité mémoire",
        "available": "Disponible",
        "views": {
            "overview": "Aperçu",
            "project": "Projet",
            "container": "Conteneur",
            "image": "Image",
            "network": "Réseau",
            "log": "Journal",
            "management": "Gestion",
        },
        "table": {
            "name": "Nom",
            "image": "Image",
            "status": "Statut",
            "ports": "Ports",
            "actions": "Actions",
            "repository": "Dépôt",
            "tag": "Tag",
            "imageId": "ID Image",
            "size": "Taille",
            "created": "Créé",
        },
        "noContainers": "Aucun conteneur trouvé",
        "noImages": "Aucune image trouvée",
        "underDevelopment": "Cette section est en cours de développement",
    },
}


def docker_manifest() -> PackageManifest:
    return PackageManifest.model_validate(
        {
            "id": "docker",
            "name": "Docker",
            "version": "24.0.7",
            "description": {
                "en": "Container platform for deploying and managing applications",
                "fr": "Plateforme de conteneurs pour déployer et gérer des applications",
            },
            "author": "Docker Inc.",
            "license": "Apache-2.0",
            "website": "https://www.docker.com",
            "icon": "mdi:docker",
            # Docker itself ships with the appliance image; nothing to run.
            "install": {"type": "binary", "steps": []},
            "frontend": {
                "icon": "mdi:docker",
                "gradient": "from-blue-500 to-blue-600",
                "component": "DockerApp",
                "i18n": DOCKER_I18N,
            },
        }
    )


BUILTIN_MANIFESTS = {
    "docker": docker_manifest,
}


def get_builtin_manifest(package_id: str) -> Optional[PackageManifest]:
    factory = BUILTIN_MANIFESTS.get(package_id)
    return factory() if factory else None


def get_builtin_catalog() -> Dict[str, Any]:
    return {
        "version": "1.0.0",
        "updated": datetime.now(timezone.utc).isoformat(),
        "apps": [
            {
                "id": "docker",
                "name": "Docker",
                "version": "24.0.7",
                "category": "containers",
                "icon": "mdi:docker",
                "manifest": None,
            }
        ],
    }
