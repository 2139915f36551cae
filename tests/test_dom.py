import pytest
from termbrowser.dom import (
    CLOSE_NAMES,
    MAX_DEPTH,
    Element,
    HTMLParser,
    HTMLSyntaxError,
    NodeKind,
    Text,
    collapse_whitespace,
    extract_title,
    parse_attributes,
    print_tree,
    release_tree,
    tree_to_list,
)


def parse(html):
    return HTMLParser(html).parse()


def kinds(node):
    return [c.kind for c in node.children]


# --- Tree Construction Tests ---

def test_html_parser_simple():
    """Test parsing a simple HTML string into a tree under a synthetic root."""
    root = parse("<p>Hello</p>")

    assert isinstance(root, Element)
    assert root.tag == "#document"
    assert root.kind is NodeKind.GENERIC
    assert root.parent is None

    p = root.children[0]
    assert p.kind is NodeKind.PARAGRAPH
    assert p.parent is root
    text = p.children[0]
    assert isinstance(text, Text)
    assert text.text == "Hello"
    assert text.parent is p


def test_html_parser_attributes():
    """Test that quoted, unquoted and bare attributes are parsed."""
    root = parse('<a href="x.html" class=nav data-x=\'1\' disabled>Go</a>')
    a = root.children[0]

    assert a.kind is NodeKind.LINK
    assert a.attributes.get("href") == "x.html"
    assert a.attributes.get("class") == "nav"
    assert a.attributes.get("data-x") == "1"
    assert "disabled" in a.attributes
    assert a.attributes.get("disabled") == ""
    assert "missing" not in a.attributes


def test_attribute_lookup_case_insensitive_first_wins():
    """Duplicate attributes keep the first value; lookups ignore case."""
    attrs = parse_attributes(' HREF="a" href="b"')
    assert attrs.get("href") == "a"
    assert attrs.get("Href") == "a"
    assert len(attrs) == 2


def test_attribute_unterminated_quote():
    """An unterminated quote swallows the rest of the attribute text."""
    attrs = parse_attributes(' alt="broken title=x')
    assert attrs.get("alt") == "broken title=x"
    assert len(attrs) == 1


def test_attribute_spaces_around_equals():
    attrs = parse_attributes(' src = "a.png"  alt= logo ')
    assert attrs.get("src") == "a.png"
    assert attrs.get("alt") == "logo"


def test_tag_names_lowercased():
    """Tag names are classified case-insensitively."""
    root = parse("<STRONG>x</Strong>")
    assert root.children[0].kind is NodeKind.BOLD
    assert root.children[0].tag == "strong"


def test_tag_aliases():
    """Alias tags map onto the same node kinds."""
    root = parse("<b></b><em></em><cite></cite><ins></ins><s></s><q></q><samp></samp>")
    assert kinds(root) == [
        NodeKind.BOLD,
        NodeKind.ITALIC,
        NodeKind.ITALIC,
        NodeKind.UNDERLINE,
        NodeKind.STRIKE,
        NodeKind.BLOCKQUOTE,
        NodeKind.CODE,
    ]


def test_header_level():
    root = parse("<h3>Title</h3>")
    header = root.children[0]
    assert header.kind is NodeKind.HEADER
    assert header.level == 3
    assert root.kind is NodeKind.GENERIC and root.level == 0


def test_unknown_tag_is_generic_container():
    """Unknown tags become transparent containers closed by their own name."""
    root = parse("<section><p>a</p></section>after")
    section = root.children[0]
    assert section.kind is NodeKind.GENERIC
    assert section.tag == "section"
    assert kinds(section) == [NodeKind.PARAGRAPH]
    assert root.children[1].text == "after"


def test_void_elements():
    """Void elements never take children."""
    root = parse("<p>a<br>b<img src=i.png>c<hr><input name=q></p>")
    p = root.children[0]
    assert kinds(p) == [
        NodeKind.TEXT,
        NodeKind.LINE_BREAK,
        NodeKind.TEXT,
        NodeKind.IMAGE,
        NodeKind.TEXT,
        NodeKind.HORIZONTAL_RULE,
        NodeKind.INPUT,
    ]
    assert all(c.children == [] for c in p.children)


def test_other_void_tags_are_generic_leaves():
    root = parse("<wbr>x<source src=a>")
    wbr = root.children[0]
    assert wbr.kind is NodeKind.GENERIC
    assert wbr.tag == "wbr"
    assert wbr.children == []
    assert root.children[1].text == "x"


def test_self_closing_unknown_tag():
    root = parse("<widget/>text")
    assert root.children[0].children == []
    assert root.children[1].text == "text"


def test_comments_doctype_and_instructions_skipped():
    root = parse("<!DOCTYPE html><!-- <p>hidden</p> --><?xml version='1.0'?><p>t</p>")
    assert kinds(root) == [NodeKind.PARAGRAPH]
    assert root.children[0].children[0].text == "t"


def test_empty_tag_name_ignored():
    root = parse("< >x")
    assert kinds(root) == [NodeKind.TEXT]
    assert root.children[0].text == "x"


# --- Closing Tag Recovery Tests ---

def test_unmatched_close_is_ignored():
    """A closing tag with no compatible open element leaves the stack as is."""
    parser = HTMLParser("<div>x</span>y</div>")
    root = parser.parse()
    div = root.children[0]
    assert [c.text for c in div.children] == ["x", "y"]
    assert parser.matched_closes == 1


def test_close_by_alias():
    root = parse("<b>bold</strong>after")
    assert root.children[0].kind is NodeKind.BOLD
    assert root.children[1].text == "after"


def test_any_header_closes_any_header():
    root = parse("<h1>T</h3>x")
    assert root.children[0].children[0].text == "T"
    assert root.children[1].text == "x"


def test_close_pops_intervening_elements():
    """Closing an outer element also closes the ones left open inside it."""
    root = parse("<div><b>x</div>y")
    div = root.children[0]
    assert kinds(div) == [NodeKind.BOLD]
    assert root.children[1].text == "y"


def test_close_never_pops_root():
    parser = HTMLParser("</html>text")
    root = parser.parse()
    assert root.children[0].text == "text"
    assert parser.matched_closes == 0


def test_close_tables():
    assert CLOSE_NAMES[NodeKind.BOLD] == {"strong", "b"}
    assert CLOSE_NAMES[NodeKind.HEADER] == {"h1", "h2", "h3", "h4", "h5", "h6"}
    assert Element(NodeKind.HEADER, "h2", None, None).accepts_close("h5")
    assert Element(NodeKind.GENERIC, "span", None, None).accepts_close("span")
    assert not Element(NodeKind.GENERIC, "span", None, None).accepts_close("div")
    assert not Element(NodeKind.PARAGRAPH, "p", None, None).accepts_close("li")


def test_implicit_list_item_close():
    """A new <li> closes the previous open item in the same list."""
    root = parse("<ul><li>a<li>b</ul>")
    ul = root.children[0]
    assert kinds(ul) == [NodeKind.LIST_ITEM, NodeKind.LIST_ITEM]


def test_nested_list_item_not_closed():
    root = parse("<ul><li>a<ul><li>b</li></ul></li><li>c</li></ul>")
    ul = root.children[0]
    assert kinds(ul) == [NodeKind.LIST_ITEM, NodeKind.LIST_ITEM]
    inner = ul.children[0].children[1]
    assert inner.kind is NodeKind.UNORDERED_LIST
    assert kinds(inner) == [NodeKind.LIST_ITEM]


def test_implicit_cell_and_paragraph_close():
    root = parse("<table><tr><td>1<td>2<tr><td>3</table><p>a<p>b")
    table = root.children[0]
    assert kinds(table) == [NodeKind.TABLE_ROW, NodeKind.TABLE_ROW]
    assert kinds(table.children[0]) == [NodeKind.TABLE_CELL, NodeKind.TABLE_CELL]
    assert kinds(root)[1:] == [NodeKind.PARAGRAPH, NodeKind.PARAGRAPH]


# --- Text And Whitespace Tests ---

def test_whitespace_collapsed():
    root = parse("<p>  a \n\t b  </p>")
    assert root.children[0].children[0].text == " a b "


def test_carriage_return_dropped():
    root = parse("<p>a\r\nb</p>")
    assert root.children[0].children[0].text == "a b"


def test_collapse_idempotent():
    once = collapse_whitespace(" a  \n b \t\r")
    assert collapse_whitespace(once) == once
    assert "  " not in once


def test_preformatted_text_verbatim():
    """Whitespace inside pre and code is kept, even in nested elements."""
    root = parse("<pre>  a\n   b<b> x\n y</b></pre><code>\tz</code>")
    pre = root.children[0]
    assert pre.children[0].text == "  a\n   b"
    assert pre.children[1].children[0].text == " x\n y"
    assert root.children[1].children[0].text == "\tz"


def test_structural_whitespace_dropped():
    """Lists and tables cannot hold inline text, so whitespace there goes."""
    root = parse("<ul>\n  <li>a</li>\n</ul>\n<table> <tr> <td>1</td> </tr> </table>")
    assert kinds(root) == [NodeKind.UNORDERED_LIST, NodeKind.TEXT, NodeKind.TABLE]
    assert kinds(root.children[0]) == [NodeKind.LIST_ITEM]
    table = root.children[2]
    assert kinds(table) == [NodeKind.TABLE_ROW]
    assert kinds(table.children[0]) == [NodeKind.TABLE_CELL]


def test_whitespace_between_inline_elements_under_root():
    root = parse("<b>x</b> <i>y</i>")
    assert kinds(root) == [NodeKind.BOLD, NodeKind.TEXT, NodeKind.ITALIC]
    assert root.children[1].text == " "


def test_whitespace_between_inline_elements_under_details():
    root = parse("<details open><summary>S</summary><b>x</b> <i>y</i></details>")
    details = root.children[0]
    assert kinds(details) == [
        NodeKind.SUMMARY, NodeKind.BOLD, NodeKind.TEXT, NodeKind.ITALIC,
    ]
    assert details.children[2].text == " "


def test_inline_whitespace_kept():
    root = parse("<p><b>a</b> <i>b</i></p>")
    p = root.children[0]
    assert p.children[1].text == " "


# --- Error Recovery Tests ---

def test_unterminated_tag_truncates():
    parser = HTMLParser("<p>kept</p><div class='x'")
    root = parser.parse()
    assert kinds(root) == [NodeKind.PARAGRAPH]
    assert parser.truncated


def test_unterminated_tag_strict():
    with pytest.raises(HTMLSyntaxError):
        HTMLParser("<p>a<b", strict=True).parse()


def test_unterminated_comment_truncates():
    parser = HTMLParser("<p>a</p><!-- never closed <p>b</p>")
    root = parser.parse()
    assert kinds(root) == [NodeKind.PARAGRAPH]
    assert parser.truncated


def test_unclosed_elements_stay_in_place():
    root = parse("<div><p>open")
    assert root.children[0].children[0].children[0].text == "open"


def test_depth_is_bounded():
    root = parse("<span>" * (MAX_DEPTH * 3) + "deep")
    depth = 0
    node = root
    while node.children and isinstance(node.children[0], Element):
        node = node.children[0]
        depth += 1
    assert depth <= MAX_DEPTH
    assert tree_to_list(root, [])[-1].text == "deep"


# --- Structural Property Tests ---

def test_pushes_match_closes_for_well_formed_input():
    html = (
        "<div><p>a <b>b</b></p><ul><li>x</li></ul>"
        "<table><tr><td>1</td></tr></table></div>"
    )
    parser = HTMLParser(html)
    parser.parse()
    assert parser.pushes == 8
    assert parser.pushes == parser.matched_closes


def test_every_node_has_one_parent():
    root = parse("<div><p>a<b>b</b></span></p><ul><li>x<li>y</ul></em><img></div>tail")
    nodes = tree_to_list(root, [])
    assert len({id(n) for n in nodes}) == len(nodes)
    for node in nodes[1:]:
        assert sum(c is node for c in node.parent.children) == 1


def test_details_open_attribute():
    root = parse("<details open><summary>S</summary>x</details><details>y</details>")
    assert root.children[0].expanded
    assert not root.children[1].expanded


# --- Lifecycle Tests ---

def test_release_tree():
    root = parse("<p>a<b>b</b></p>")
    nodes = tree_to_list(root, [])
    assert release_tree(root) == 5
    assert all(n.released for n in nodes)
    assert all(n.children == [] and n.parent is None for n in nodes)
    with pytest.raises(ValueError):
        release_tree(root)


def test_extract_title():
    root = parse("<head><title> My   Page </title></head><p>x</p>")
    assert extract_title(root) == "My Page"
    assert extract_title(parse("<p>x</p>")) is None


def test_print_tree(capsys):
    print_tree(parse('<p class="x">a<br></p>'))
    out = capsys.readouterr().out.splitlines()
    assert out == ["<#document>", '  <p class="x">', "    'a'", "    <br>"]
