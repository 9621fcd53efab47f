"""
ImageStage v1.0 - Translations Module
=====================================
UI text strings in multiple languages
"""

TRANSLATIONS = {
    "ua": {
        "title": "🖼️ ImageStage",
        "subtitle": "Завантаження зображень з кадруванням перед збереженням форми",

        # Sidebar
        "sb_config": "🛠 Налаштування",
        "lbl_lang": "Мова",
        "lbl_context": "Модуль",
        "lbl_requirements": "Вимоги: мінімум **{}×{}** px, до **{}**",
        "lbl_aspect": "Пропорції: **{}**",
        "lbl_aspect_free": "вільні",
        "lbl_cropping_on": "✂️ Кадрування доступне",
        "lbl_cropping_off": "📥 Пряме завантаження (без кадрування)",
        "lbl_grant_url": "URL видачі підписаних посилань",
        "lbl_contexts_file": "Завантажити модулі (.json)",
        "msg_contexts_loaded": "✅ Завантажено модулів: {}",
        "error_contexts": "❌ Помилка файлу модулів: {}",
        "btn_clear_staged": "🧹 Очистити тимчасові",
        "msg_cleared": "Видалено тимчасових зображень: {}",

        # Form
        "form_header": "📝 Форма",
        "lbl_title": "Назва",
        "lbl_image": "Зображення",
        "uploader_label": "Оберіть або перетягніть зображення",
        "btn_save": "💾 Зберегти",
        "msg_saving": "⏳ Завантаження зображень...",
        "msg_saved": "✅ Збережено!",
        "error_upload": "❌ Помилка завантаження: {}",
        "error_no_grant_url": "⚠️ Вкажіть URL видачі підписаних посилань",
        "lbl_saved_values": "Збережені значення",

        # Slot
        "slot_empty": "Зображення не обрано",
        "slot_validating": "⏳ Перевірка...",
        "slot_staged": "🕓 Тимчасове: {}",
        "slot_committed": "✅ Збережено: {}",
        "btn_edit": "✏️ Редагувати",
        "btn_remove": "🗑️ Видалити",

        # Editor
        "editor_title": "🛠 Кадрування",
        "lbl_zoom": "Масштаб",
        "lbl_rotate": "**🔄 Поворот**",
        "btn_rot_left": "↺ -90°",
        "btn_rot_right": "↻ +90°",
        "lbl_flip": "**↔️ Віддзеркалення**",
        "chk_flip_h": "Горизонтально",
        "chk_flip_v": "Вертикально",
        "lbl_crop": "**✂️ Кадр**",
        "lbl_output": "📏 Результат: **{} × {}** px",
        "btn_apply": "✅ Застосувати",
        "btn_cancel": "✖️ Скасувати",
        "error_editor": "❌ Помилка редактора: {}",

        # Status
        "status_empty": "Порожньо",
        "status_validating": "Перевірка",
        "status_invalid": "Помилка",
        "status_cropping": "Кадрування",
        "status_previewing": "Попередній перегляд",
        "status_committing": "Завантаження",
        "status_committed": "Збережено",
        "status_removed": "Видалено",

        # About
        "about_title": "ℹ️ Про програму",
        "about_desc": "Перевірка, кадрування та відкладене завантаження зображень через підписані URL",
        "about_version": "Версія",
    },
    "en": {
        "title": "🖼️ ImageStage",
        "subtitle": "Image upload with cropping, committed when the form is saved",

        # Sidebar
        "sb_config": "🛠 Settings",
        "lbl_lang": "Language",
        "lbl_context": "Module",
        "lbl_requirements": "Requirements: at least **{}×{}** px, up to **{}**",
        "lbl_aspect": "Aspect ratio: **{}**",
        "lbl_aspect_free": "free",
        "lbl_cropping_on": "✂️ Cropping available",
        "lbl_cropping_off": "📥 Direct upload (no cropping)",
        "lbl_grant_url": "Signed URL issuer",
        "lbl_contexts_file": "Load modules (.json)",
        "msg_contexts_loaded": "✅ Modules loaded: {}",
        "error_contexts": "❌ Modules file error: {}",
        "btn_clear_staged": "🧹 Clear staged images",
        "msg_cleared": "Removed staged images: {}",

        # Form
        "form_header": "📝 Form",
        "lbl_title": "Title",
        "lbl_image": "Image",
        "uploader_label": "Choose or drop an image",
        "btn_save": "💾 Save",
        "msg_saving": "⏳ Uploading images...",
        "msg_saved": "✅ Saved!",
        "error_upload": "❌ Upload failed: {}",
        "error_no_grant_url": "⚠️ Set the signed URL issuer first",
        "lbl_saved_values": "Saved values",

        # Slot
        "slot_empty": "No image selected",
        "slot_validating": "⏳ Validating...",
        "slot_staged": "🕓 Staged: {}",
        "slot_committed": "✅ Saved: {}",
        "btn_edit": "✏️ Edit",
        "btn_remove": "🗑️ Remove",

        # Editor
        "editor_title": "🛠 Crop",
        "lbl_zoom": "Zoom",
        "lbl_rotate": "**🔄 Rotate**",
        "btn_rot_left": "↺ -90°",
        "btn_rot_right": "↻ +90°",
        "lbl_flip": "**↔️ Flip**",
        "chk_flip_h": "Horizontal",
        "chk_flip_v": "Vertical",
        "lbl_crop": "**✂️ Crop**",
        "lbl_output": "📏 Output: **{} × {}** px",
        "btn_apply": "✅ Apply",
        "btn_cancel": "✖️ Cancel",
        "error_editor": "❌ Editor error: {}",

        # Status
        "status_empty": "Empty",
        "status_validating": "Validating",
        "status_invalid": "Invalid",
        "status_cropping": "Cropping",
        "status_previewing": "Preview",
        "status_committing": "Uploading",
        "status_committed": "Saved",
        "status_removed": "Removed",

        # About
        "about_title": "ℹ️ About",
        "about_desc": "Validation, cropping and deferred signed-URL upload of images",
        "about_version": "Version",
    }
}
