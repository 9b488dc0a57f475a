"""Starter pages created on every new site.

Bodies are Gutenberg block markup with Japanese copy followed by an English
line, meant to be edited from wp-admin.
"""
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class PageSpec:
    title: str
    slug: str
    content: str = ""


EDIT_NOTICE = (
    '<!-- wp:paragraph {"className":"edit-notice"} -->\n'
    '<p class="edit-notice">※ こちらの内容は、WordPressの管理画面から編集してご利用ください。'
    "<br>Please edit this page from the WordPress dashboard.</p>\n"
    "<!-- /wp:paragraph -->"
)


def heading(text: str, level: int = 2) -> str:
    attrs = "" if level == 2 else f' {{"level":{level}}}'
    return f"<!-- wp:heading{attrs} -->\n<h{level}>{text}</h{level}>\n<!-- /wp:heading -->"


def paragraph(ja: str, en: str = "") -> str:
    body = f"{ja}<br>{en}" if en else ja
    return f"<!-- wp:paragraph -->\n<p>{body}</p>\n<!-- /wp:paragraph -->"


def bullet_list(items: List[str]) -> str:
    lis = "".join(f"<li>{i}</li>" for i in items)
    return f"<!-- wp:list -->\n<ul>{lis}</ul>\n<!-- /wp:list -->"


def table(rows: List[tuple]) -> str:
    trs = "\n".join(f"<tr><th>{k}</th><td>{v}</td></tr>" for k, v in rows)
    return (
        "<!-- wp:table -->\n"
        f'<figure class="wp-block-table"><table><tbody>\n{trs}\n</tbody></table></figure>\n'
        "<!-- /wp:table -->"
    )


def _page(*blocks: str) -> str:
    return "\n\n".join([*blocks, EDIT_NOTICE])


HOME_PAGE = PageSpec(title="ホーム", slug="home")
BLOG_PAGE = PageSpec(title="ブログ", slug="blog")

CONTACT = PageSpec(
    title="お問い合わせ",
    slug="contact",
    content=_page(
        heading("お問い合わせ / Contact"),
        paragraph(
            "以下のフォームからお気軽にお問い合わせください。",
            "Feel free to reach us using the form below.",
        ),
        '<!-- wp:shortcode -->\n[contact-form-7 id="1" title="お問い合わせフォーム"]\n<!-- /wp:shortcode -->',
    ),
)

COMPANY = PageSpec(
    title="会社概要",
    slug="company",
    content=_page(
        heading("会社概要 / Company Profile"),
        table([
            ("会社名 / Company", "株式会社サンプル / Sample Inc."),
            ("所在地 / Address", "〒000-0000 東京都〇〇区〇〇"),
            ("設立 / Founded", "20XX年X月"),
            ("代表者 / Representative", "代表取締役 〇〇 〇〇"),
            ("事業内容 / Business", "Webサービスの企画・開発・運営 / Web service planning and development"),
            ("電話番号 / Phone", "03-XXXX-XXXX"),
            ("メール / Email", "info@example.com"),
        ]),
    ),
)

PRIVACY = PageSpec(
    title="プライバシーポリシー",
    slug="privacy-policy",
    content=_page(
        heading("プライバシーポリシー / Privacy Policy"),
        paragraph(
            "当サイトは、個人情報保護法を遵守し、以下の方針に従って個人情報を適切に取り扱います。",
            "This site handles personal information in accordance with applicable law and the policy below.",
        ),
        heading("1. 個人情報の定義 / Personal information", 3),
        paragraph(
            "氏名、住所、電話番号、メールアドレスなど、特定の個人を識別できる情報をいいます。",
            "Any information that identifies an individual, such as name, address, phone number or email.",
        ),
        heading("2. 利用目的 / Purpose of use", 3),
        bullet_list([
            "お問い合わせへの回答 / Answering inquiries",
            "サービスの提供 / Providing our services",
            "サービス改善のための統計分析 / Statistics for service improvement",
        ]),
        heading("3. 第三者提供 / Disclosure to third parties", 3),
        paragraph(
            "法令に基づく場合を除き、ご本人の同意なく第三者に提供することはありません。",
            "We never share personal information without consent unless required by law.",
        ),
        heading("4. お問い合わせ / Contact", 3),
        paragraph(
            "個人情報の取扱いに関するご質問はお問い合わせフォームよりご連絡ください。",
            "Questions about this policy can be sent through the contact form.",
        ),
    ),
)

TERMS = PageSpec(
    title="利用規約",
    slug="terms",
    content=_page(
        heading("利用規約 / Terms of Use"),
        paragraph(
            "当サイトを利用された場合、本規約に同意したものとみなします。",
            "By using this site you agree to these terms.",
        ),
        heading("第1条（禁止事項） / Prohibited conduct", 3),
        bullet_list([
            "法令または公序良俗に違反する行為 / Unlawful acts",
            "当サイトの運営を妨害する行為 / Interfering with the site",
            "不正アクセス行為 / Unauthorized access",
        ]),
        heading("第2条（免責事項） / Disclaimer", 3),
        paragraph(
            "当サイトは掲載内容の正確性・完全性を保証するものではありません。",
            "We make no warranty as to the accuracy or completeness of the content.",
        ),
        heading("第3条（規約の変更） / Changes", 3),
        paragraph(
            "本規約は必要に応じて変更されることがあります。",
            "These terms may be updated as needed.",
        ),
    ),
)

SERVICES = PageSpec(
    title="サービス紹介",
    slug="services",
    content=_page(
        heading("サービス紹介 / Our Services"),
        paragraph("私たちが提供するサービスをご紹介します。", "Here is what we offer."),
        *[
            block
            for n in (1, 2, 3)
            for block in (
                heading(f"サービス{n} / Service {n}", 3),
                paragraph(
                    "サービスの説明がここに入ります。",
                    "Describe this service, its pricing and results here.",
                ),
            )
        ],
    ),
)

ACCESS = PageSpec(
    title="アクセス",
    slug="access",
    content=_page(
        heading("アクセス / Access"),
        table([
            ("住所 / Address", "〒000-0000 東京都〇〇区〇〇"),
            ("最寄り駅 / Nearest station", "〇〇駅 徒歩5分 / 5 min walk from 〇〇 Station"),
            ("営業時間 / Hours", "平日 9:00〜18:00 / Weekdays 9:00-18:00"),
        ]),
        paragraph(
            "地図はGoogleマップの埋め込みブロックで追加してください。",
            "Add a map with an embed block.",
        ),
    ),
)

BUSINESS_PAGES: List[PageSpec] = [CONTACT, COMPANY, PRIVACY, TERMS, SERVICES, ACCESS]
