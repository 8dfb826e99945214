"""Reflection harness sources that adapt function-shaped submissions to stdin/stdout."""

from __future__ import annotations

import ast
import re

from .parsing import OUTPUT_SENTINEL

CANONICAL_CLASS = "Solution"
JAVA_HARNESS_CLASS = "ReflectionRunner"
PYTHON_HARNESS_FILE = "codegenie_runner.py"

JAVA_MAIN_RE = re.compile(r"\bstatic\s+void\s+main\s*\(")
JAVA_PUBLIC_CLASS_RE = re.compile(r"public\s+class\s+\w+")

# Tokens are split on commas and whitespace; bracketed arrays are read up to the first `]`.
JAVA_HARNESS_SOURCE = r'''import java.lang.reflect.Constructor;
import java.lang.reflect.InvocationTargetException;
import java.lang.reflect.Method;
import java.lang.reflect.Modifier;
import java.util.Arrays;
import java.util.Scanner;
import java.util.regex.Pattern;

public class ReflectionRunner {
    private static final String SENTINEL = "@@SENTINEL@@";
    private static final Pattern ARRAY_TOKEN = Pattern.compile("\\[[^\\]]*\\]");
    private static final String DELIMITER = "[,\\s]+";

    public static void main(String[] args) throws Throwable {
        Class<?> clazz = Class.forName("Solution");
        Method method = findTarget(clazz);
        if (method == null) {
            System.err.println("HarnessError: no invocable method found in class Solution");
            System.exit(1);
        }
        method.setAccessible(true);

        Constructor<?> constructor = clazz.getDeclaredConstructor();
        constructor.setAccessible(true);
        Object instance = constructor.newInstance();

        Scanner scanner = new Scanner(System.in, "UTF-8");
        scanner.useDelimiter(DELIMITER);
        Class<?>[] types = method.getParameterTypes();
        Object[] params = new Object[types.length];
        for (int i = 0; i < types.length; i++) {
            params[i] = parseArg(scanner, types[i]);
        }

        Object result;
        try {
            result = method.invoke(instance, params);
        } catch (InvocationTargetException e) {
            throw e.getCause();
        }
        System.out.println(SENTINEL);
        System.out.println(render(result));
        System.out.flush();
    }

    private static Method findTarget(Class<?> clazz) {
        for (Method m : clazz.getDeclaredMethods()) {
            if (m.getName().equals("solution") && Modifier.isPublic(m.getModifiers()) && !m.isSynthetic()) {
                return m;
            }
        }
        for (Method m : clazz.getDeclaredMethods()) {
            if (Modifier.isPublic(m.getModifiers()) && !m.isSynthetic() && !m.getName().equals("main")) {
                return m;
            }
        }
        return null;
    }

    private static String unquote(String token) {
        if (token.length() >= 2 && token.startsWith("\"") && token.endsWith("\"")) {
            return token.substring(1, token.length() - 1);
        }
        return token;
    }

    private static String[] arrayParts(Scanner scanner) {
        String token = scanner.findWithinHorizon(ARRAY_TOKEN, 0);
        if (token == null) {
            token = scanner.next();
        }
        String body = token.replaceAll("[\\[\\]]", "").trim();
        if (body.isEmpty()) {
            return new String[0];
        }
        return body.split(DELIMITER);
    }

    private static Object parseArg(Scanner scanner, Class<?> type) {
        if (type == int.class || type == Integer.class) return scanner.nextInt();
        if (type == long.class || type == Long.class) return scanner.nextLong();
        if (type == double.class || type == Double.class) return scanner.nextDouble();
        if (type == String.class) return unquote(scanner.next());
        if (type == int[].class) {
            String[] parts = arrayParts(scanner);
            int[] values = new int[parts.length];
            for (int i = 0; i < parts.length; i++) values[i] = Integer.parseInt(parts[i].trim());
            return values;
        }
        if (type == String[].class) {
            String[] parts = arrayParts(scanner);
            for (int i = 0; i < parts.length; i++) parts[i] = unquote(parts[i].trim());
            return parts;
        }
        throw new IllegalArgumentException("HarnessError: unsupported parameter type " + type.getName());
    }

    private static String render(Object result) {
        if (result == null) return "null";
        if (result instanceof int[]) return Arrays.toString((int[]) result);
        if (result instanceof long[]) return Arrays.toString((long[]) result);
        if (result instanceof double[]) return Arrays.toString((double[]) result);
        if (result instanceof boolean[]) return Arrays.toString((boolean[]) result);
        if (result instanceof char[]) return Arrays.toString((char[]) result);
        if (result instanceof Object[]) return Arrays.deepToString((Object[]) result);
        return String.valueOf(result);
    }
}
'''.replace("@@SENTINEL@@", OUTPUT_SENTINEL)

PYTHON_HARNESS_SOURCE = r'''import ast
import importlib.util
import inspect
import os
import re
import sys
import typing

SENTINEL = "@@SENTINEL@@"
ARRAY_TOKEN = re.compile(r"\[[^\]]*\]")
DELIMITERS = re.compile(r"[,\s]+")
TOKEN = re.compile(r"[^,\s]+")

SCALARS = {"int": int, "float": float, "str": str, "bool": bool}


class TokenReader:
    def __init__(self, text):
        self.text = text
        self.pos = 0

    def _skip(self):
        match = DELIMITERS.match(self.text, self.pos)
        if match:
            self.pos = match.end()

    def at_array(self):
        self._skip()
        return self.text.startswith("[", self.pos)

    def next_token(self):
        self._skip()
        match = TOKEN.match(self.text, self.pos)
        if match is None:
            raise EOFError("HarnessError: not enough input tokens")
        self.pos = match.end()
        return match.group(0)

    def next_array(self):
        self._skip()
        match = ARRAY_TOKEN.search(self.text, self.pos)
        if match is None:
            return self.next_token().strip("[]").split()
        self.pos = match.end()
        body = match.group(0)[1:-1].strip()
        return [part for part in DELIMITERS.split(body) if part] if body else []


def unquote(token):
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
        return token[1:-1]
    return token


def guess(token):
    try:
        return ast.literal_eval(token)
    except (ValueError, SyntaxError):
        return unquote(token)


def convert(token, kind):
    if kind is None:
        return guess(token)
    if kind is bool:
        return token.lower() in ("true", "1")
    if kind is str:
        return unquote(token)
    return kind(token)


def describe(annotation):
    """Return (is_list, element_type) for a parameter annotation."""
    if annotation is inspect.Parameter.empty:
        return None, None
    if isinstance(annotation, str):
        text = annotation.replace(" ", "").replace("typing.", "")
        match = re.fullmatch(r"(?:list|List)(?:\[(\w+)\])?", text)
        if match:
            return True, SCALARS.get(match.group(1) or "")
        return False, SCALARS.get(text)
    origin = typing.get_origin(annotation)
    if annotation is list or origin is list:
        args = typing.get_args(annotation)
        return True, args[0] if args and args[0] in SCALARS.values() else None
    if annotation in SCALARS.values():
        return False, annotation
    return False, None


def parse_arg(reader, annotation):
    is_list, kind = describe(annotation)
    if is_list is None:
        is_list = reader.at_array()
    if is_list:
        return [convert(part, kind) for part in reader.next_array()]
    return convert(reader.next_token(), kind)


def render(value):
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(render(item) for item in value) + "]"
    return str(value)


def load_submission(path):
    spec = importlib.util.spec_from_file_location("Solution", path)
    module = importlib.util.module_from_spec(spec)
    sys.modules["Solution"] = module
    spec.loader.exec_module(module)
    return module


def public_callables(namespace):
    for name, member in vars(namespace).items():
        if name.startswith("_") or name == "main":
            continue
        if inspect.isfunction(member) or isinstance(member, (staticmethod, classmethod)):
            yield name


def find_target(module):
    cls = getattr(module, "Solution", None)
    if inspect.isclass(cls):
        instance = cls()
        if callable(getattr(cls, "solution", None)):
            return instance.solution
        for name in public_callables(cls):
            return getattr(instance, name)
    func = getattr(module, "solution", None)
    if inspect.isfunction(func):
        return func
    for name in public_callables(module):
        member = getattr(module, name)
        if getattr(member, "__module__", None) == module.__name__:
            return member
    return None


def annotations_of(target):
    try:
        hints = typing.get_type_hints(target)
    except Exception:
        hints = {}
    params = inspect.signature(target).parameters.values()
    return [hints.get(param.name, param.annotation) for param in params]


def main():
    here = os.path.dirname(os.path.abspath(__file__))
    module = load_submission(os.path.join(here, "Solution.py"))
    target = find_target(module)
    if target is None:
        sys.stderr.write("HarnessError: no invocable function found in Solution.py\n")
        sys.exit(1)

    reader = TokenReader(sys.stdin.read())
    args = [parse_arg(reader, annotation) for annotation in annotations_of(target)]
    result = target(*args)
    print(SENTINEL)
    print(render(result))


if __name__ == "__main__":
    main()
'''.replace("@@SENTINEL@@", OUTPUT_SENTINEL)


def java_has_entry_point(code: str) -> bool:
    return bool(JAVA_MAIN_RE.search(code))


def prepare_java_source(code: str) -> str:
    """Make sure the submission declares the canonical `Solution` class."""

    if f"class {CANONICAL_CLASS}" in code:
        return code
    return JAVA_PUBLIC_CLASS_RE.sub(f"public class {CANONICAL_CLASS}", code)


_DEFINITION_NODES = (
    ast.Import,
    ast.ImportFrom,
    ast.FunctionDef,
    ast.AsyncFunctionDef,
    ast.ClassDef,
    ast.Assign,
    ast.AnnAssign,
)


def python_has_entry_point(code: str) -> bool:
    """A Python submission is a script when its module body does anything besides define things."""

    try:
        tree = ast.parse(code)
    except SyntaxError:
        return True

    for node in tree.body:
        if isinstance(node, _DEFINITION_NODES):
            continue
        if isinstance(node, ast.Expr) and isinstance(node.value, ast.Constant):
            continue
        return True
    return False
