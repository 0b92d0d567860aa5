# File: schemaforge/generators/i18n.py
"""
NexaFlow SchemaForge - Translation Generator
==============================================
Built-in validation message tables plus per-language translation files.

Files (only when more than one language is configured)::

    i18n/{lang}/validation.json   validation messages
    i18n/{lang}/fields.json       {entity: {field: label}}
    i18n/{lang}/entities.json     {entity: display name}

Placeholders use ``str.format`` syntax: ``{field}``, ``{min}``, ``{max}``,
``{values}``.  Languages without a built-in table fall back to English.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from schemaforge.context import GeneratorContext
from schemaforge.generators.base import Generator
from schemaforge.models import GeneratedFile, ManifestIR

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemaforge.generators.i18n")

# ---------------------------------------------------------------------------
# Message tables
# ---------------------------------------------------------------------------

MESSAGE_KEYS: List[str] = [
    "required",
    "email",
    "url",
    "min",
    "max",
    "minLength",
    "maxLength",
    "oneOf",
    "pattern",
    "integer",
    "positive",
]

MESSAGE_TABLES: Dict[str, Dict[str, str]] = {
    "en": {
        "required": "{field} is required",
        "email": "Invalid email address",
        "url": "Invalid URL",
        "min": "{field} must be at least {min}",
        "max": "{field} must be at most {max}",
        "minLength": "{field} must be at least {min} characters",
        "maxLength": "{field} must be at most {max} characters",
        "oneOf": "{field} must be one of: {values}",
        "pattern": "{field} format is invalid",
        "integer": "{field} must be a whole number",
        "positive": "{field} must be positive",
    },
    "es": {
        "required": "{field} es requerido",
        "email": "Correo electrónico inválido",
        "url": "URL inválida",
        "min": "{field} debe ser al menos {min}",
        "max": "{field} debe ser como máximo {max}",
        "minLength": "{field} debe tener al menos {min} caracteres",
        "maxLength": "{field} debe tener como máximo {max} caracteres",
        "oneOf": "{field} debe ser uno de: {values}",
        "pattern": "Formato de {field} inválido",
        "integer": "{field} debe ser un número entero",
        "positive": "{field} debe ser positivo",
    },
    "fr": {
        "required": "{field} est requis",
        "email": "Adresse e-mail invalide",
        "url": "URL invalide",
        "min": "{field} doit être au moins {min}",
        "max": "{field} doit être au plus {max}",
        "minLength": "{field} doit contenir au moins {min} caractères",
        "maxLength": "{field} doit contenir au plus {max} caractères",
        "oneOf": "{field} doit être l'un des: {values}",
        "pattern": "Format de {field} invalide",
        "integer": "{field} doit être un nombre entier",
        "positive": "{field} doit être positif",
    },
    "de": {
        "required": "{field} ist erforderlich",
        "email": "Ungültige E-Mail-Adresse",
        "url": "Ungültige URL",
        "min": "{field} muss mindestens {min} sein",
        "max": "{field} darf höchstens {max} sein",
        "minLength": "{field} muss mindestens {min} Zeichen haben",
        "maxLength": "{field} darf höchstens {max} Zeichen haben",
        "oneOf": "{field} muss eines von: {values} sein",
        "pattern": "Format von {field} ist ungültig",
        "integer": "{field} muss eine ganze Zahl sein",
        "positive": "{field} muss positiv sein",
    },
    "pt": {
        "required": "{field} é obrigatório",
        "email": "Endereço de e-mail inválido",
        "url": "URL inválida",
        "min": "{field} deve ser pelo menos {min}",
        "max": "{field} deve ser no máximo {max}",
        "minLength": "{field} deve ter pelo menos {min} caracteres",
        "maxLength": "{field} deve ter no máximo {max} caracteres",
        "oneOf": "{field} deve ser um de: {values}",
        "pattern": "Formato de {field} inválido",
        "integer": "{field} deve ser um número inteiro",
        "positive": "{field} deve ser positivo",
    },
    "it": {
        "required": "{field} è richiesto",
        "email": "Indirizzo email non valido",
        "url": "URL non valido",
        "min": "{field} deve essere almeno {min}",
        "max": "{field} deve essere al massimo {max}",
        "minLength": "{field} deve contenere almeno {min} caratteri",
        "maxLength": "{field} deve contenere al massimo {max} caratteri",
        "oneOf": "{field} deve essere uno tra: {values}",
        "pattern": "Formato di {field} non valido",
        "integer": "{field} deve essere un numero intero",
        "positive": "{field} deve essere positivo",
    },
    "ja": {
        "required": "{field}は必須です",
        "email": "無効なメールアドレス",
        "url": "無効なURL",
        "min": "{field}は{min}以上である必要があります",
        "max": "{field}は{max}以下である必要があります",
        "minLength": "{field}は{min}文字以上である必要があります",
        "maxLength": "{field}は{max}文字以下である必要があります",
        "oneOf": "{field}は次のいずれかである必要があります: {values}",
        "pattern": "{field}の形式が無効です",
        "integer": "{field}は整数である必要があります",
        "positive": "{field}は正の数である必要があります",
    },
    "zh": {
        "required": "{field}是必填项",
        "email": "无效的电子邮件地址",
        "url": "无效的URL",
        "min": "{field}必须至少为{min}",
        "max": "{field}必须最多为{max}",
        "minLength": "{field}必须至少为{min}个字符",
        "maxLength": "{field}必须最多为{max}个字符",
        "oneOf": "{field}必须是以下之一: {values}",
        "pattern": "{field}格式无效",
        "integer": "{field}必须是整数",
        "positive": "{field}必须是正数",
    },
    "ko": {
        "required": "{field}은(는) 필수입니다",
        "email": "유효하지 않은 이메일 주소",
        "url": "유효하지 않은 URL",
        "min": "{field}은(는) 최소 {min}이어야 합니다",
        "max": "{field}은(는) 최대 {max}이어야 합니다",
        "minLength": "{field}은(는) 최소 {min}자 이상이어야 합니다",
        "maxLength": "{field}은(는) 최대 {max}자 이하이어야 합니다",
        "oneOf": "{field}은(는) 다음 중 하나여야 합니다: {values}",
        "pattern": "{field} 형식이 유효하지 않습니다",
        "integer": "{field}은(는) 정수여야 합니다",
        "positive": "{field}은(는) 양수여야 합니다",
    },
}


def message_table(language: str) -> Dict[str, str]:
    """Validation messages for *language*, falling back to English."""
    return MESSAGE_TABLES.get(language, MESSAGE_TABLES["en"])


def format_message(key: str, language: str = "en", **params: Any) -> str:
    """Render one validation message at generation time."""
    return message_table(language)[key].format(**params)


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


class I18nGenerator(Generator):
    name = "i18n"
    description = "Validation messages, field labels and entity names per language"
    category = "i18n"

    def generate(self, manifest: ManifestIR, ctx: GeneratorContext) -> List[GeneratedFile]:
        if not manifest.i18n.is_multilingual:
            return []

        field_labels: Dict[str, Dict[str, str]] = {
            entity.name: {name: cfg.display_label(name) for name, cfg in entity.fields.items()}
            for entity in manifest.entities
        }
        entity_names: Dict[str, str] = {
            entity.name: ctx.names(entity).label for entity in manifest.entities
        }

        files: List[GeneratedFile] = []
        for language in manifest.i18n.languages:
            if language not in MESSAGE_TABLES:
                logger.warning("No built-in messages for '%s' - using English.", language)
            files.append(
                self.text_file(f"i18n/{language}/validation.json", to_json(message_table(language)))
            )
            files.append(self.text_file(f"i18n/{language}/fields.json", to_json(field_labels)))
            files.append(self.text_file(f"i18n/{language}/entities.json", to_json(entity_names)))
        logger.debug("i18n: %d languages.", len(manifest.i18n.languages))
        return files


__all__: List[str] = [
    "MESSAGE_KEYS",
    "MESSAGE_TABLES",
    "message_table",
    "format_message",
    "to_json",
    "I18nGenerator",
]

logger.debug("schemaforge.generators.i18n loaded - %d public symbols.", len(__all__))
